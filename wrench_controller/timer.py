"""
Control rate decimator driven by simulation time.
"""


class UpdateTimer:
    """
    Decide on which simulation steps the control law runs.

    update() returns the elapsed simulation time since the last accepted
    update, or 0.0 when no update is due. With update_rate == 0 every step is
    accepted.
    """

    def __init__(self, update_rate: float = 0.0):
        if update_rate < 0.0:
            raise ValueError("update_rate must be >= 0")
        self.update_rate = float(update_rate)
        self.update_period = 1.0 / update_rate if update_rate > 0.0 else 0.0
        self.last_update = None

    def reset(self, sim_time=None):
        self.last_update = sim_time

    def update(self, sim_time: float) -> float:
        # First call or world reset (time went backwards): latch only
        if self.last_update is None or sim_time < self.last_update:
            self.last_update = sim_time
            return 0.0

        elapsed = sim_time - self.last_update
        if elapsed <= 0.0 or elapsed < self.update_period:
            return 0.0

        self.last_update = sim_time
        return elapsed
