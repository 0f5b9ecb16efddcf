from amaranth import *


__all__ = ["SerialTX", "SerialRX"]


def _check_data_bits(data_bits):
    if not isinstance(data_bits, int) or data_bits <= 0:
        raise ValueError("Data width must be a positive integer, not {!r}"
                         .format(data_bits))


class SerialTX(Elaboratable):
    """Asynchronous serial transmitter.

    Shifts out frames made of a start bit, ``data_bits`` data bits (LSB first) and a stop bit.
    Every state transition is aligned to ``bit_boundary``, so each bit is held on the line for
    exactly one bit period.

    A new frame is only started if ``enable`` is asserted. Deasserting ``enable`` does not
    abort the frame being transmitted. Frames are sent back-to-back: if another byte is
    available at the end of a stop bit, its start bit follows immediately.

    Parameters
    ----------
    data_bits : int
        Data width.

    Attributes
    ----------
    bit_boundary : Signal, in
        Bit boundary strobe, see :class:`BaudGenerator`.
    enable : Signal, in
        Transmitter enable.
    data : Signal(data_bits), in
        Data to transmit.
    ack : Signal, in
        ``data`` is valid.
    rdy : Signal, out
        ``data`` is consumed on this cycle.
    o : Signal, out
        Serial line. Idle high.
    busy : Signal, out
        A frame is being transmitted.
    """
    def __init__(self, *, data_bits=8):
        _check_data_bits(data_bits)
        self.data_bits = data_bits

        self.bit_boundary = Signal()
        self.enable       = Signal()
        self.data         = Signal(data_bits)
        self.ack          = Signal()
        self.rdy          = Signal()
        self.o            = Signal(init=1)
        self.busy         = Signal()

    def elaborate(self, platform):
        m = Module()

        shreg = Signal(self.data_bits)
        index = Signal(range(self.data_bits))

        load = Signal()
        m.d.comb += load.eq(self.bit_boundary & self.enable & self.ack)

        with m.FSM() as fsm:
            with m.State("IDLE"):
                m.d.comb += self.o.eq(1)
                with m.If(load):
                    m.d.comb += self.rdy.eq(1)
                    m.d.sync += shreg.eq(self.data)
                    m.next = "START"

            with m.State("START"):
                m.d.comb += self.o.eq(0)
                with m.If(self.bit_boundary):
                    m.d.sync += index.eq(0)
                    m.next = "DATA"

            with m.State("DATA"):
                m.d.comb += self.o.eq(shreg[0])
                with m.If(self.bit_boundary):
                    m.d.sync += [
                        shreg.eq(shreg >> 1),
                        index.eq(index + 1),
                    ]
                    with m.If(index == self.data_bits - 1):
                        m.next = "STOP"

            with m.State("STOP"):
                m.d.comb += self.o.eq(1)
                with m.If(load):
                    m.d.comb += self.rdy.eq(1)
                    m.d.sync += shreg.eq(self.data)
                    m.next = "START"
                with m.Elif(self.bit_boundary):
                    m.next = "IDLE"

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE"))

        return m


class SerialRX(Elaboratable):
    """Asynchronous serial receiver.

    Waits for a falling edge on the line, then checks the start bit on every oversampling tick
    and samples each data bit and the stop bit in its middle.

    The line must stay low for the whole start bit, otherwise the edge is treated as a glitch.
    A glitch, or a low stop bit, discards the frame and pulses ``frame_err``. In both cases the
    receiver returns to its idle state and keeps listening.

    A new frame is only detected if ``enable`` is asserted. Deasserting ``enable`` does not
    abort the frame being received.

    Parameters
    ----------
    data_bits : int
        Data width.
    oversampling : int
        Number of ticks per bit period.

    Attributes
    ----------
    tick : Signal, in
        Oversampling tick, see :class:`BaudGenerator`.
    enable : Signal, in
        Receiver enable.
    i : Signal, in
        Serial line. Idle high.
    data : Signal(data_bits), out
        Received data. Valid when ``rdy`` is asserted.
    rdy : Signal, out
        A frame was received on this cycle.
    frame_err : Signal, out
        A malformed frame was discarded on this cycle.
    busy : Signal, out
        A frame is being received.
    """
    def __init__(self, *, data_bits=8, oversampling=16):
        _check_data_bits(data_bits)
        if not isinstance(oversampling, int) or oversampling < 2:
            raise ValueError("Oversampling factor must be an integer greater than or equal "
                             "to 2, not {!r}"
                             .format(oversampling))
        self.data_bits    = data_bits
        self.oversampling = oversampling

        self.tick      = Signal()
        self.enable    = Signal()
        self.i         = Signal(init=1)
        self.data      = Signal(data_bits)
        self.rdy       = Signal()
        self.frame_err = Signal()
        self.busy      = Signal()

    def elaborate(self, platform):
        m = Module()

        i_prev = Signal(init=1)
        m.d.sync += i_prev.eq(self.i)

        shreg = Signal(self.data_bits)
        index = Signal(range(self.data_bits))
        ticks = Signal(range(self.oversampling))

        m.d.comb += self.data.eq(shreg)

        with m.FSM() as fsm:
            with m.State("IDLE"):
                with m.If(self.enable & i_prev & ~self.i):
                    m.d.sync += ticks.eq(0)
                    m.next = "DETECT_START"

            with m.State("DETECT_START"):
                with m.If(self.tick):
                    with m.If(self.i):
                        m.d.comb += self.frame_err.eq(1)
                        m.next = "IDLE"
                    with m.Elif(ticks == self.oversampling - 2):
                        # sample the first data bit in its middle
                        m.d.sync += [
                            ticks.eq(self.oversampling - 1 - self.oversampling // 2),
                            index.eq(0),
                        ]
                        m.next = "SAMPLE"
                    with m.Else():
                        m.d.sync += ticks.eq(ticks + 1)

            with m.State("SAMPLE"):
                with m.If(self.tick):
                    with m.If(ticks == self.oversampling - 1):
                        m.d.sync += [
                            ticks.eq(0),
                            shreg.eq(Cat(shreg[1:], self.i)),
                            index.eq(index + 1),
                        ]
                        with m.If(index == self.data_bits - 1):
                            m.next = "CHECK_STOP"
                    with m.Else():
                        m.d.sync += ticks.eq(ticks + 1)

            with m.State("CHECK_STOP"):
                with m.If(self.tick):
                    with m.If(ticks == self.oversampling - 1):
                        m.d.sync += ticks.eq(0)
                        with m.If(self.i):
                            m.d.comb += self.rdy.eq(1)
                        with m.Else():
                            m.d.comb += self.frame_err.eq(1)
                        m.next = "IDLE"
                    with m.Else():
                        m.d.sync += ticks.eq(ticks + 1)

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE"))

        return m
