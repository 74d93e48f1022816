from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from solid_queue.core.exceptions import HandlerNotFoundError

if TYPE_CHECKING:
    from solid_queue.jobs.context import JobContext

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._implementations


class JobHandler(Protocol):
    """Protocol for handlers that process one kind of job."""

    async def handle(self, ctx: "JobContext") -> Any:
        """
        Process a claimed job.

        Raising any exception marks the attempt as failed; the job is then
        retried or failed depending on its remaining attempts.
        """
        ...


class HandlerRegistry(Registry[JobHandler]):
    """Registry mapping handler names stored on jobs to executable handlers."""

    def __init__(self):
        super().__init__("Handler")

    def register(self, name: str, implementation: Any) -> None:
        """Register a callable or an object exposing ``handle(ctx)``.

        Re-registering a name replaces the previous handler.
        """
        from solid_queue.jobs.context import as_handler

        super().register(name, as_handler(implementation))

    def get(self, name: str) -> JobHandler:
        try:
            return super().get(name)
        except KeyError:
            raise HandlerNotFoundError(name) from None
