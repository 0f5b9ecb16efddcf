from amaranth.sim import Simulator


__all__ = ["simulation_test"]


def simulation_test(dut, *testbenches):
    sim = Simulator(dut)
    sim.add_clock(1e-6)
    for testbench in testbenches:
        sim.add_testbench(testbench)
    sim.run()
