# amaranth: UnusedElaboratable=no

import unittest

from amaranth import *

from .utils import simulation_test
from .utils.serial import *
from ..cores.baud import BaudGenerator
from ..cores.serial import SerialTX, SerialRX


def tx_bench(divisor, oversampling=16):
    m = Module()
    m.submodules.baud = baud = BaudGenerator(oversampling=oversampling)
    m.submodules.tx   = tx   = SerialTX()
    m.d.comb += [
        baud.divisor.eq(divisor),
        tx.bit_boundary.eq(baud.bit_boundary),
    ]
    return m, tx


def rx_bench(divisor, oversampling=16):
    m = Module()
    m.submodules.baud = baud = BaudGenerator(oversampling=oversampling)
    m.submodules.rx   = rx   = SerialRX(oversampling=oversampling)
    m.d.comb += [
        baud.divisor.eq(divisor),
        rx.tick.eq(baud.tick),
    ]
    return m, rx


async def tx_load(ctx, tx, data, timeout=1000):
    ctx.set(tx.data, data)
    ctx.set(tx.ack, 1)
    cycles = 0
    while not ctx.get(tx.rdy):
        if cycles >= timeout:
            raise RuntimeError("Transmitter did not accept data")
        await ctx.tick()
        cycles += 1
    await ctx.tick()
    ctx.set(tx.ack, 0)


class SerialTXTestCase(unittest.TestCase):
    def test_simple(self):
        dut = SerialTX()
        self.assertEqual(dut.data_bits, 8)
        self.assertEqual(len(dut.data), 8)

    def test_wrong_data_bits(self):
        with self.assertRaisesRegex(ValueError,
                r"Data width must be a positive integer, not 0"):
            SerialTX(data_bits=0)

    def test_waveform(self):
        m, tx = tx_bench(divisor=1)
        async def testbench(ctx):
            self.assertEqual(ctx.get(tx.o), 1)
            self.assertEqual(ctx.get(tx.busy), 0)
            ctx.set(tx.enable, 1)
            await tx_load(ctx, tx, 0x55)
            self.assertEqual(ctx.get(tx.busy), 1)
            bits = await serial_capture(ctx, tx.o, bit_cycles=16)
            self.assertEqual(bits, [0, 1, 0, 1, 0, 1, 0, 1, 0, 1])
            for _ in range(16):
                await ctx.tick()
            self.assertEqual(ctx.get(tx.busy), 0)
            self.assertEqual(ctx.get(tx.o), 1)
        simulation_test(m, testbench)

    def test_bit_period(self):
        m, tx = tx_bench(divisor=3, oversampling=4)
        async def testbench(ctx):
            ctx.set(tx.enable, 1)
            await tx_load(ctx, tx, 0x00)
            # start bit and all data bits are low for 9 bit periods
            for _ in range(9 * 12):
                self.assertEqual(ctx.get(tx.o), 0)
                await ctx.tick()
            for _ in range(12):
                self.assertEqual(ctx.get(tx.o), 1)
                await ctx.tick()
        simulation_test(m, testbench)

    def test_back_to_back(self):
        m, tx = tx_bench(divisor=1)
        async def producer(ctx):
            ctx.set(tx.enable, 1)
            for data in (0xa5, 0x3c):
                await tx_load(ctx, tx, data)

        async def monitor(ctx):
            while ctx.get(tx.o):
                await ctx.tick()
            for _ in range(8):
                await ctx.tick()
            bits = []
            for _ in range(20):
                bits.append(ctx.get(tx.o))
                for _ in range(16):
                    await ctx.tick()
            self.assertEqual(bits, frame_bits(0xa5) + frame_bits(0x3c))
        simulation_test(m, producer, monitor)

    def test_disabled(self):
        m, tx = tx_bench(divisor=1)
        async def testbench(ctx):
            ctx.set(tx.data, 0xff)
            ctx.set(tx.ack, 1)
            for _ in range(100):
                self.assertEqual(ctx.get(tx.rdy), 0)
                self.assertEqual(ctx.get(tx.o), 1)
                await ctx.tick()
        simulation_test(m, testbench)

    def test_disable_in_flight(self):
        m, tx = tx_bench(divisor=1)
        async def testbench(ctx):
            ctx.set(tx.enable, 1)
            await tx_load(ctx, tx, 0x0f)
            ctx.set(tx.enable, 0)
            ctx.set(tx.data, 0xf0)
            ctx.set(tx.ack, 1)
            # the frame completes instead of being aborted
            bits = await serial_capture(ctx, tx.o, bit_cycles=16)
            self.assertEqual(bits, frame_bits(0x0f))
            # and the next byte is not started
            for _ in range(100):
                self.assertEqual(ctx.get(tx.rdy), 0)
                self.assertEqual(ctx.get(tx.o), 1)
                await ctx.tick()
            self.assertEqual(ctx.get(tx.busy), 0)
        simulation_test(m, testbench)


class SerialRXTestCase(unittest.TestCase):
    def test_simple(self):
        dut = SerialRX()
        self.assertEqual(dut.data_bits, 8)
        self.assertEqual(dut.oversampling, 16)

    def test_wrong_oversampling(self):
        with self.assertRaisesRegex(ValueError,
                r"Oversampling factor must be an integer greater than or equal to 2, not 0"):
            SerialRX(oversampling=0)

    def check_receive(self, divisor, oversampling, frames):
        m, rx = rx_bench(divisor=divisor, oversampling=oversampling)
        bit_cycles = divisor * oversampling
        received   = []
        frame_errs = 0

        async def sender(ctx):
            ctx.set(rx.enable, 1)
            for _ in range(7):
                await ctx.tick()
            for data, stop in frames:
                await serial_send(ctx, rx.i, data, bit_cycles, stop=stop)
                for _ in range(bit_cycles):
                    await ctx.tick()

        async def monitor(ctx):
            nonlocal frame_errs
            for _ in range((len(frames) * 12 + 1) * bit_cycles):
                if ctx.get(rx.rdy):
                    received.append(ctx.get(rx.data))
                if ctx.get(rx.frame_err):
                    frame_errs += 1
                await ctx.tick()

        simulation_test(m, sender, monitor)
        return received, frame_errs

    def test_receive(self):
        received, frame_errs = self.check_receive(1, 16, [(0xa5, 1), (0x00, 1), (0xff, 1)])
        self.assertEqual(received, [0xa5, 0x00, 0xff])
        self.assertEqual(frame_errs, 0)

    def test_receive_divisor(self):
        received, frame_errs = self.check_receive(3, 16, [(0x5a, 1), (0x81, 1)])
        self.assertEqual(received, [0x5a, 0x81])
        self.assertEqual(frame_errs, 0)

    def test_receive_oversampling_4(self):
        received, frame_errs = self.check_receive(5, 4, [(0x3c, 1)])
        self.assertEqual(received, [0x3c])
        self.assertEqual(frame_errs, 0)

    def test_frame_error(self):
        received, frame_errs = self.check_receive(1, 16, [(0x42, 0), (0x24, 1)])
        self.assertEqual(received, [0x24])
        self.assertEqual(frame_errs, 1)

    def check_start_glitch(self, low_cycles):
        m, rx = rx_bench(divisor=1)
        async def testbench(ctx):
            ctx.set(rx.enable, 1)
            await ctx.tick()
            ctx.set(rx.i, 0)
            for _ in range(low_cycles):
                await ctx.tick()
                self.assertEqual(ctx.get(rx.busy), 1)
                self.assertEqual(ctx.get(rx.frame_err), 0)
            ctx.set(rx.i, 1)
            self.assertEqual(ctx.get(rx.frame_err), 1)
            self.assertEqual(ctx.get(rx.rdy), 0)
            for _ in range(200):
                await ctx.tick()
                self.assertEqual(ctx.get(rx.rdy), 0)
                self.assertEqual(ctx.get(rx.frame_err), 0)
            self.assertEqual(ctx.get(rx.busy), 0)
        simulation_test(m, testbench)

    def test_start_glitch(self):
        self.check_start_glitch(3)

    def test_start_glitch_half_bit(self):
        self.check_start_glitch(8)

    def test_start_glitch_three_quarters_bit(self):
        self.check_start_glitch(12)

    def test_start_glitch_almost_full_bit(self):
        self.check_start_glitch(15)

    def test_disabled(self):
        m, rx = rx_bench(divisor=1)
        async def testbench(ctx):
            await serial_send(ctx, rx.i, 0x99, 16)
            for _ in range(16):
                self.assertEqual(ctx.get(rx.busy), 0)
                await ctx.tick()

        async def monitor(ctx):
            for _ in range(200):
                self.assertEqual(ctx.get(rx.rdy), 0)
                await ctx.tick()
        simulation_test(m, testbench, monitor)

    def test_disable_in_flight(self):
        m, rx = rx_bench(divisor=1)
        received = []

        async def sender(ctx):
            ctx.set(rx.enable, 1)
            await ctx.tick()
            await serial_send(ctx, rx.i, 0xc3, 16)

        async def monitor(ctx):
            for cycle in range(200):
                if cycle == 40:
                    self.assertEqual(ctx.get(rx.busy), 1)
                    ctx.set(rx.enable, 0)
                if ctx.get(rx.rdy):
                    received.append(ctx.get(rx.data))
                await ctx.tick()
        simulation_test(m, sender, monitor)
        self.assertEqual(received, [0xc3])
