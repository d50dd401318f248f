from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from src.trading_ops.deployment.models import CanaryDeployment


class DeploymentStore(ABC):
    """Storage for canary deployments owned by one engine."""

    @abstractmethod
    def get(self, deployment_id: str) -> Optional[CanaryDeployment]:
        pass

    @abstractmethod
    def put(self, deployment: CanaryDeployment) -> None:
        pass

    @abstractmethod
    def __iter__(self) -> Iterator[CanaryDeployment]:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemoryDeploymentStore(DeploymentStore):
    """Process-local store; contents are lost on restart."""

    def __init__(self):
        self._deployments: Dict[str, CanaryDeployment] = {}

    def get(self, deployment_id: str) -> Optional[CanaryDeployment]:
        return self._deployments.get(deployment_id)

    def put(self, deployment: CanaryDeployment) -> None:
        self._deployments[deployment.id] = deployment

    def __iter__(self) -> Iterator[CanaryDeployment]:
        return iter(list(self._deployments.values()))

    def __len__(self) -> int:
        return len(self._deployments)
