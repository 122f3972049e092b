"""
PipelineStage — abstract base class for the four analysis stages.

The runner calls execute() for each stage in order.  A stage builds its
request from the StageContext (which holds every earlier stage's output
for the same attempt), invokes the stage service, parses the response
into its typed record and stores it back on the context.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from chequebatch.core.constants import StageName
from chequebatch.pipeline.context import StageContext


class StageInvoker(Protocol):
    """Anything that can call a stage service (StageClient, test fakes)."""

    async def invoke(
        self,
        stage: StageName,
        payload: dict[str, Any],
        *,
        batch_id: str | None = None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        ...


class PipelineStage(ABC):
    """
    Base class for every analysis stage.

    Subclasses MUST implement:
        - name (StageName)        — also the stage service route
        - description (str)       — human-readable label for logs
        - build_payload(ctx)      — request body from the accumulated context
        - parse(response)         — typed record from the response body
    """

    name: StageName
    description: str = "No description"

    def __init__(self, client: StageInvoker) -> None:
        self.client = client

    @abstractmethod
    def build_payload(self, ctx: StageContext) -> dict[str, Any]:
        ...

    @abstractmethod
    def parse(self, response: dict[str, Any]) -> Any:
        ...

    async def execute(self, ctx: StageContext) -> Any:
        """
        Run the stage.  Raises StageError when the service call fails;
        the runner decides whether the attempt is retried.
        """
        response = await self.client.invoke(
            self.name,
            self.build_payload(ctx),
            batch_id=ctx.batch_id,
            item_id=ctx.item.id,
        )
        output = self.parse(response)
        ctx.store(self.name, output)
        return output
