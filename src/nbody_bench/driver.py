class StepDriver:
    """
    Sweeps the force kernel over all indices through a backend, one step at a
    time. Every write of a step goes to the destination buffer while all reads
    come from the source, and roles swap only after the whole sweep returned.
    """

    def __init__(self, backend, buffers):
        self.backend = backend
        self.buffers = buffers

    def step(self):
        n = len(self.buffers)
        self.backend.dispatch(self.buffers.source, self.buffers.destination, 0, n)
        self.buffers.swap()

    def run(self, steps, progress=None, progress_interval=1):
        for step in range(steps):
            if progress is not None and step % progress_interval == 0:
                progress(step, steps)
            self.step()
        return self.buffers
