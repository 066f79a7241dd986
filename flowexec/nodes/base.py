from abc import ABC, abstractmethod

from ..workflow.context import RunContext
from ..workflow.models import ExecutionResult, WorkflowNode


class BaseNodeRunner(ABC):
    """ Abstract base class for node runners. """

    def __init__(self, node: WorkflowNode):
        self.node = node

    @property
    def node_id(self) -> str:
        return self.node.id

    @abstractmethod
    async def execute(self, ctx: RunContext) -> ExecutionResult:
        """
        Run the node and return its result. Must be implemented by subclasses.
        """

    def records_output(self, result: ExecutionResult) -> bool:
        """ Whether ``result`` is stored in the run's node outputs. """
        return True
