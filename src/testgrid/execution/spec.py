"""Explicit test declarations."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from testgrid.core.types import TestId
from testgrid.resources.handles import ResourceProfile
from testgrid.retry.policy import RetryPolicy

if TYPE_CHECKING:
    from testgrid.core.context import ExecutionContext

__all__ = ["TestBody", "TestSpec", "TestSpecBuilder"]

TestBody = Callable[["ExecutionContext"], object]


@dataclass(frozen=True)
class TestSpec:
    """Everything the coordinator needs to run one test.

    Attributes:
        test_id: Name and suite.
        body: Called with the ExecutionContext. Raising fails the attempt,
            raising SkipExecution skips the test.
        retry_policy: None means the coordinator's default policy.
        resource_profile: Resource kinds acquired before each attempt.
        dimensions: Labels counted by metrics (browser, environment, ...).

    """

    __test__ = False

    test_id: TestId
    body: TestBody
    retry_policy: RetryPolicy | None = None
    resource_profile: ResourceProfile = field(default_factory=ResourceProfile)
    dimensions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def builder(cls, name: str, suite: str = "default") -> TestSpecBuilder:
        return TestSpecBuilder(TestId(name, suite))

    @property
    def key(self) -> str:
        return self.test_id.key


class TestSpecBuilder:
    """Fluent builder for TestSpec.

    Example:
        >>> spec = (
        ...     TestSpec.builder("test_login", suite="auth")
        ...     .body(login)
        ...     .resources("page")
        ...     .dimension("browser", "chromium")
        ...     .build()
        ... )

    """

    __test__ = False

    def __init__(self, test_id: TestId) -> None:
        self._test_id = test_id
        self._body: TestBody | None = None
        self._policy: RetryPolicy | None = None
        self._kinds: list[str] = []
        self._options: dict[str, Any] = {}
        self._dimensions: dict[str, str] = {}

    def body(self, fn: TestBody) -> TestSpecBuilder:
        self._body = fn
        return self

    def retry(self, policy: RetryPolicy) -> TestSpecBuilder:
        self._policy = policy
        return self

    def resources(self, *kinds: str, **options: Any) -> TestSpecBuilder:
        self._kinds.extend(kinds)
        self._options.update(options)
        return self

    def dimension(self, name: str, value: str) -> TestSpecBuilder:
        self._dimensions[name] = value
        return self

    def build(self) -> TestSpec:
        if self._body is None:
            raise ValueError(f"Test {self._test_id.key} has no body")
        return TestSpec(
            test_id=self._test_id,
            body=self._body,
            retry_policy=self._policy,
            resource_profile=ResourceProfile.of(*self._kinds, **self._options),
            dimensions=MappingProxyType(dict(self._dimensions)),
        )
