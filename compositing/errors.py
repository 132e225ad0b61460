# compositing/errors.py


class CompositingError(Exception):
    pass


class LoadError(CompositingError):
    """
    A layer source could not be fetched or decoded.
    Fatal for the background and mesh layers, tolerated for mask/highlight.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"could not load {source}: {reason}")


class RenderError(CompositingError):
    """The mesh render collaborator failed; aborts the current run only."""


class StaleResultDiscarded(CompositingError):
    """
    Not a user-facing failure: a newer pattern swap was issued while this one
    was in flight, so its result was dropped.
    """

    def __init__(self, sequence: int, latest: int):
        self.sequence = sequence
        self.latest = latest
        super().__init__(f"run {sequence} superseded by run {latest}")
