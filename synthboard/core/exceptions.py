"""Exception hierarchy for the ingestion pipeline."""


class SynthboardError(Exception):
    """Base class for all errors raised by synthboard."""


class NotFoundError(SynthboardError):
    """A referenced run, target, stock, molecule or route does not exist."""

    def __init__(self, entity: str, key: object) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class TargetMismatchError(NotFoundError):
    """The target exists but is not part of the run's benchmark."""

    def __init__(self, target_id: object, benchmark_id: object) -> None:
        self.entity = "BenchmarkTarget"
        self.key = target_id
        self.benchmark_id = benchmark_id
        SynthboardError.__init__(
            self,
            f"Target {target_id} does not belong to benchmark {benchmark_id}",
        )


class DuplicatePredictionError(SynthboardError):
    """A run already links this route (or this rank) to the target.

    Usually means a load was re-run without clearing the previous one.
    """


class MalformedTreeError(SynthboardError):
    """A route tree has no unique root or an inconsistent leaf flag."""


class MalformedInputError(SynthboardError):
    """Input violates the loader contract (missing identity key, bad rank)."""


class TransientStoreError(SynthboardError):
    """The database failed in a way that may succeed on a later attempt."""
