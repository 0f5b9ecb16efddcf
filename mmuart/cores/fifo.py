from amaranth import *
from amaranth.lib.fifo import SyncFIFO


__all__ = ["ByteFIFO"]


class ByteFIFO(Elaboratable):
    """Bounded FIFO with overflow detection.

    A thin wrapper around :class:`amaranth.lib.fifo.SyncFIFO` that tolerates misuse of both
    ports instead of leaving it undefined:

    * a write into a full FIFO is dropped, and raises the sticky ``overflow`` flag;
    * a read from an empty FIFO is ignored, and ``r_data`` reads as 0.

    Parameters
    ----------
    width : int
        Data width.
    depth : int
        Capacity. Must be at least 1. Powers of two are recommended.

    Attributes
    ----------
    w_data : Signal(width), in
        Data to write.
    w_en : Signal, in
        Write strobe.
    w_rdy : Signal, out
        The FIFO is not full.
    r_data : Signal(width), out
        Data at the head of the FIFO, or 0 if it is empty.
    r_en : Signal, in
        Read strobe.
    r_rdy : Signal, out
        The FIFO is not empty.
    level : Signal(range(depth + 1)), out
        Number of stored entries.
    overflow : Signal, out
        A write was attempted while the FIFO was full. Sticky until ``overflow_clr``.
    overflow_clr : Signal, in
        Clear ``overflow``. A write overflowing on the same cycle takes precedence.
    """
    def __init__(self, *, width=8, depth):
        if not isinstance(width, int) or width <= 0:
            raise ValueError("Width must be a positive integer, not {!r}"
                             .format(width))
        if not isinstance(depth, int) or depth <= 0:
            raise ValueError("Depth must be a positive integer, not {!r}"
                             .format(depth))
        self.width = width
        self.depth = depth

        self.w_data       = Signal(width)
        self.w_en         = Signal()
        self.w_rdy        = Signal()
        self.r_data       = Signal(width)
        self.r_en         = Signal()
        self.r_rdy        = Signal()
        self.level        = Signal(range(depth + 1))
        self.overflow     = Signal()
        self.overflow_clr = Signal()

    @property
    def empty(self):
        return self.level == 0

    @property
    def full(self):
        return self.level == self.depth

    def elaborate(self, platform):
        m = Module()
        m.submodules.storage = storage = SyncFIFO(width=self.width, depth=self.depth)

        m.d.comb += [
            storage.w_data.eq(self.w_data),
            storage.w_en.eq(self.w_en),
            self.w_rdy.eq(storage.w_rdy),

            storage.r_en.eq(self.r_en & storage.r_rdy),
            self.r_rdy.eq(storage.r_rdy),
            self.r_data.eq(Mux(storage.r_rdy, storage.r_data, 0)),

            self.level.eq(storage.r_level),
        ]

        with m.If(self.w_en & ~storage.w_rdy):
            m.d.sync += self.overflow.eq(1)
        with m.Elif(self.overflow_clr):
            m.d.sync += self.overflow.eq(0)

        return m
