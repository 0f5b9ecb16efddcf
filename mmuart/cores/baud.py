from amaranth import *


__all__ = ["BaudGenerator"]


class BaudGenerator(Elaboratable):
    """Baud rate generator.

    Divides the clock by ``divisor`` to produce an oversampling tick, and further divides the
    tick by ``oversampling`` to mark bit boundaries. Both counters are free-running, so two
    consecutive bit boundaries are always exactly ``divisor * oversampling`` cycles apart.

    A ``divisor`` of 0 is a configuration error: both counters are held at 0 and no tick is
    produced until a non-zero divisor is provided.

    Parameters
    ----------
    divisor_bits : int
        Divisor width.
    oversampling : int
        Number of ticks per bit period.

    Attributes
    ----------
    divisor : Signal(divisor_bits), in
        Clock cycles per oversampling tick. Changes take effect on the next cycle.
    tick : Signal, out
        Oversampling tick. Asserted for one cycle every ``divisor`` cycles.
    bit_boundary : Signal, out
        Asserted for one cycle every ``oversampling`` ticks, together with ``tick``.
    config_err : Signal, out
        The divisor is 0.
    """
    def __init__(self, *, divisor_bits=16, oversampling=16):
        if not isinstance(divisor_bits, int) or divisor_bits <= 0:
            raise ValueError("Divisor width must be a positive integer, not {!r}"
                             .format(divisor_bits))
        if not isinstance(oversampling, int) or oversampling < 2:
            raise ValueError("Oversampling factor must be an integer greater than or equal "
                             "to 2, not {!r}"
                             .format(oversampling))
        self.divisor_bits = divisor_bits
        self.oversampling = oversampling

        self.divisor      = Signal(divisor_bits)
        self.tick         = Signal()
        self.bit_boundary = Signal()
        self.config_err   = Signal()

    def elaborate(self, platform):
        m = Module()

        cycles = Signal(self.divisor_bits)
        ticks  = Signal(range(self.oversampling))

        m.d.comb += self.config_err.eq(self.divisor == 0)

        with m.If(self.config_err):
            m.d.sync += [
                cycles.eq(0),
                ticks.eq(0),
            ]
        with m.Elif(cycles + 1 >= self.divisor):
            m.d.comb += self.tick.eq(1)
            m.d.sync += cycles.eq(0)
            with m.If(ticks == self.oversampling - 1):
                m.d.comb += self.bit_boundary.eq(1)
                m.d.sync += ticks.eq(0)
            with m.Else():
                m.d.sync += ticks.eq(ticks + 1)
        with m.Else():
            m.d.sync += cycles.eq(cycles + 1)

        return m
