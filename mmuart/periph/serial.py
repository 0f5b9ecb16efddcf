from enum import IntEnum, IntFlag

from amaranth import *

from ..cores.baud import BaudGenerator
from ..cores.fifo import ByteFIFO
from ..cores.serial import SerialTX, SerialRX


__all__ = ["Register", "Control", "Status", "UARTPeripheral"]


class Register(IntEnum):
    CTRL     = 0x0
    STATUS   = 0x1
    BAUD_DIV = 0x2
    TX_DATA  = 0x3
    RX_DATA  = 0x4


class Control(IntFlag):
    ENABLE   = 1 << 0
    LOOPBACK = 1 << 1


class Status(IntFlag):
    TX_EMPTY       = 1 << 0
    TX_FULL        = 1 << 1
    RX_EMPTY       = 1 << 2
    RX_FULL        = 1 << 3
    FRAME_ERR      = 1 << 4
    OVERRUN_ERR    = 1 << 5
    TX_OVERFLOW    = 1 << 6
    CONFIG_ERR     = 1 << 7
    INVALID_ACCESS = 1 << 8
    TX_BUSY        = 1 << 9
    RX_BUSY        = 1 << 10

    IDLE   = TX_EMPTY | RX_EMPTY
    STICKY = FRAME_ERR | OVERRUN_ERR | TX_OVERFLOW | INVALID_ACCESS


def _bit(flag):
    return flag.bit_length() - 1


class UARTPeripheral(Elaboratable):
    """Memory-mapped UART peripheral.

    Bus registers
    -------------
    CTRL : read/write
        Control register. ``ENABLE`` allows new frames to be transmitted and received; frames in
        flight always complete. ``LOOPBACK`` connects the transmitter to the receiver internally,
        ignores the ``rx`` pin and holds the ``tx`` pin high.
    STATUS : read/write-one-to-clear
        Status flags, see :class:`Status`. Reading has no side effect. Writing 1 to a sticky
        flag (``FRAME_ERR``, ``OVERRUN_ERR``, ``TX_OVERFLOW``, ``INVALID_ACCESS``) clears it,
        unless the flag is raised again on the same cycle.
    BAUD_DIV : read/write
        Clock cycles per oversampling tick. 0 is invalid and raises ``CONFIG_ERR``. Writing it
        while a frame is in flight is a usage error and raises ``INVALID_ACCESS``.
    TX_DATA : write-only
        Transmitter data. Pushed into the transmitter FIFO, or dropped with ``TX_OVERFLOW`` if
        the FIFO is full.
    RX_DATA : read-only
        Receiver data. Popped from the receiver FIFO. Reads as 0 without side effect if the
        FIFO is empty.

    Bus protocol
    ------------
    ``addr``, ``wdata``, ``wr_en`` and ``rd_en`` are sampled on the rising edge of the clock.
    ``rdata`` is updated on the edge that samples a read, and holds its value until the next
    one. Accessing an address outside the register map, writing a read-only register or
    reading a write-only one raises ``INVALID_ACCESS`` and has no other effect (reads return
    0). If ``wr_en`` and ``rd_en`` are asserted together, the write is performed, the read is
    ignored (``rdata`` keeps its previous value) and ``INVALID_ACCESS`` is raised.

    All state is updated on the same clock edge. The register file observes the FIFO levels
    committed on the previous edge, as every other component does.

    Parameters
    ----------
    divisor : int
        Clock divisor reset value. Should be set to
        ``int(clk_frequency // (baudrate * oversampling))``.
    divisor_bits : int
        Clock divisor width.
    data_width : int
        Bus data width. Must be wide enough to hold the ``STATUS`` register.
    rx_depth : int
        Depth of the receiver FIFO.
    tx_depth : int
        Depth of the transmitter FIFO.
    oversampling : int
        Number of receiver samples per bit period.

    Attributes
    ----------
    rst_n : Signal, in
        Synchronous reset, active low. Held asserted until driven high.
    addr : Signal(3), in
        Register address.
    wdata : Signal(data_width), in
        Write data.
    wr_en : Signal, in
        Write enable.
    rd_en : Signal, in
        Read enable.
    rdata : Signal(data_width), out
        Read data.
    tx : Signal, out
        Serial output. Idle high.
    rx : Signal, in
        Serial input. Idle high.
    """
    def __init__(self, *, divisor=1, divisor_bits=16, data_width=16, rx_depth=16, tx_depth=16,
                 oversampling=16):
        if not isinstance(divisor_bits, int) or divisor_bits <= 0:
            raise ValueError("Divisor width must be a positive integer, not {!r}"
                             .format(divisor_bits))
        if not isinstance(divisor, int) or divisor <= 0:
            raise ValueError("Divisor reset value must be a positive integer, not {!r}"
                             .format(divisor))
        if divisor >= 2**divisor_bits:
            raise ValueError("Divisor reset value {} does not fit in {} bits"
                             .format(divisor, divisor_bits))
        if not isinstance(data_width, int) or data_width < Status.RX_BUSY.bit_length():
            raise ValueError("Data width must be an integer greater than or equal to {}, "
                             "not {!r}"
                             .format(Status.RX_BUSY.bit_length(), data_width))
        if not isinstance(rx_depth, int) or rx_depth <= 0:
            raise ValueError("Receiver FIFO depth must be a positive integer, not {!r}"
                             .format(rx_depth))
        if not isinstance(tx_depth, int) or tx_depth <= 0:
            raise ValueError("Transmitter FIFO depth must be a positive integer, not {!r}"
                             .format(tx_depth))
        if not isinstance(oversampling, int) or oversampling < 2:
            raise ValueError("Oversampling factor must be an integer greater than or equal "
                             "to 2, not {!r}"
                             .format(oversampling))
        self.divisor      = divisor
        self.divisor_bits = divisor_bits
        self.data_width   = data_width

        self._baud    = BaudGenerator(divisor_bits=divisor_bits, oversampling=oversampling)
        self._tx      = SerialTX()
        self._rx      = SerialRX(oversampling=oversampling)
        self._tx_fifo = ByteFIFO(width=8, depth=tx_depth)
        self._rx_fifo = ByteFIFO(width=8, depth=rx_depth)

        self.rst_n = Signal()
        self.addr  = Signal(range(max(Register) + 1))
        self.wdata = Signal(data_width)
        self.wr_en = Signal()
        self.rd_en = Signal()
        self.rdata = Signal(data_width)
        self.tx    = Signal(init=1)
        self.rx    = Signal(init=1)

    @property
    def ports(self):
        return [
            self.rst_n, self.addr, self.wdata, self.wr_en, self.rd_en, self.rdata,
            self.tx, self.rx,
        ]

    def elaborate(self, platform):
        m = Module()

        m.submodules.baud    = self._baud
        m.submodules.tx      = self._tx
        m.submodules.rx      = self._rx
        m.submodules.tx_fifo = self._tx_fifo
        m.submodules.rx_fifo = self._rx_fifo

        enable    = Signal()
        loopback  = Signal()
        ctrl      = Cat(enable, loopback)
        divisor   = Signal(self.divisor_bits, init=self.divisor)
        frame_err = Signal()
        inv_acc   = Signal()

        # Serial engine

        m.d.comb += [
            self._baud.divisor.eq(divisor),

            self._tx.bit_boundary.eq(self._baud.bit_boundary),
            self._tx.enable.eq(enable),
            self._tx.data.eq(self._tx_fifo.r_data),
            self._tx.ack.eq(self._tx_fifo.r_rdy),
            self._tx_fifo.r_en.eq(self._tx.rdy),

            self._rx.tick.eq(self._baud.tick),
            self._rx.enable.eq(enable),
            self._rx.i.eq(Mux(loopback, self._tx.o, self.rx)),
            self._rx_fifo.w_data.eq(self._rx.data),
            self._rx_fifo.w_en.eq(self._rx.rdy),

            self.tx.eq(Mux(loopback, 1, self._tx.o)),
        ]

        # Bus access decoding

        # Same bit order as `Status`.
        status = Cat(
            self._tx_fifo.empty,
            self._tx_fifo.full,
            self._rx_fifo.empty,
            self._rx_fifo.full,
            frame_err,
            self._rx_fifo.overflow,
            self._tx_fifo.overflow,
            self._baud.config_err,
            inv_acc,
            self._tx.busy,
            self._rx.busy,
        )

        # A write takes precedence over a simultaneous read.
        read = Signal()
        m.d.comb += read.eq(self.rd_en & ~self.wr_en)

        clear       = Signal(len(status))
        inv_acc_set = Signal()

        with m.If(self.wr_en & self.rd_en):
            m.d.comb += inv_acc_set.eq(1)

        with m.If(self.wr_en):
            with m.Switch(self.addr):
                with m.Case(Register.CTRL):
                    m.d.sync += ctrl.eq(self.wdata)
                with m.Case(Register.STATUS):
                    m.d.comb += clear.eq(self.wdata & int(Status.STICKY))
                with m.Case(Register.BAUD_DIV):
                    m.d.sync += divisor.eq(self.wdata)
                    with m.If(self._tx.busy | self._rx.busy):
                        m.d.comb += inv_acc_set.eq(1)
                with m.Case(Register.TX_DATA):
                    m.d.comb += [
                        self._tx_fifo.w_data.eq(self.wdata[:8]),
                        self._tx_fifo.w_en.eq(1),
                    ]
                with m.Default():
                    m.d.comb += inv_acc_set.eq(1)

        with m.If(read):
            with m.Switch(self.addr):
                with m.Case(Register.CTRL):
                    m.d.sync += self.rdata.eq(ctrl)
                with m.Case(Register.STATUS):
                    m.d.sync += self.rdata.eq(status)
                with m.Case(Register.BAUD_DIV):
                    m.d.sync += self.rdata.eq(divisor)
                with m.Case(Register.RX_DATA):
                    m.d.comb += self._rx_fifo.r_en.eq(1)
                    m.d.sync += self.rdata.eq(self._rx_fifo.r_data)
                with m.Default():
                    m.d.comb += inv_acc_set.eq(1)
                    m.d.sync += self.rdata.eq(0)

        # Sticky flags. Raising a flag takes precedence over clearing it.

        m.d.comb += [
            self._rx_fifo.overflow_clr.eq(clear[_bit(Status.OVERRUN_ERR)]),
            self._tx_fifo.overflow_clr.eq(clear[_bit(Status.TX_OVERFLOW)]),
        ]

        with m.If(self._rx.frame_err):
            m.d.sync += frame_err.eq(1)
        with m.Elif(clear[_bit(Status.FRAME_ERR)]):
            m.d.sync += frame_err.eq(0)

        with m.If(inv_acc_set):
            m.d.sync += inv_acc.eq(1)
        with m.Elif(clear[_bit(Status.INVALID_ACCESS)]):
            m.d.sync += inv_acc.eq(0)

        rst = Signal()
        m.d.comb += rst.eq(~self.rst_n)

        return ResetInserter(rst)(m)
