import time

from singletrack import DriverIntent, ModelType, SimulationDaemon, UserInput, default_bundle


def benchmark_daemon(model: ModelType, steps: int = 2000, dt: float = 0.02) -> float:
    daemon = SimulationDaemon(default_bundle(model))
    user_input = UserInput(dt=dt, longitudinal=DriverIntent(throttle=0.6), steering_nudge=0.3)
    start = time.perf_counter()
    for _ in range(steps):
        daemon.step(user_input)
    elapsed = time.perf_counter() - start
    return steps / elapsed


def benchmark_batch(model: ModelType, dt: float, steps: int = 500) -> float:
    daemon = SimulationDaemon(default_bundle(model))
    inputs = [UserInput(dt=dt, longitudinal=DriverIntent(throttle=0.6)) for _ in range(steps)]
    start = time.perf_counter()
    daemon.step_batch(inputs)
    elapsed = time.perf_counter() - start
    return steps * dt / elapsed


for model in ModelType:
    ticks_per_second = benchmark_daemon(model)
    print(f"{model.value:>3s} daemon → {ticks_per_second:8.1f} ticks/sec")

for model in ModelType:
    for dt in (0.01, 0.05, 0.1):
        realtime = benchmark_batch(model, dt)
        print(f"{model.value:>3s} batch dt={dt:<4} → {realtime:8.1f}x real time")
