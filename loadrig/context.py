"""
VUContext: what a scenario body sees during one iteration.

Issues requests through the shared httpx client, turns network failures into
status-0 outcomes, and feeds the shared metric registry.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Callable, List, Mapping, Sequence, Union

import httpx

from loadrig.exceptions import RequestFailure
from loadrig.metrics.registry import MetricRegistry
from loadrig.scenario import RequestOutcome, RequestSpec, weighted_choice

logger = logging.getLogger(__name__)

Check = Callable[[RequestOutcome], bool]


class VUContext:
    """
    Per-VU execution context.

    Attributes:
        vu_id: 1-based id of the virtual user.
        iteration: 0-based iteration counter of this VU.
        rng: The VU's own random generator.
        metrics: Shared metric registry.
        base_url: Target service base URL.
    """

    def __init__(
        self,
        *,
        vu_id: int,
        client: httpx.AsyncClient,
        metrics: MetricRegistry,
        base_url: str,
        rng: random.Random,
    ) -> None:
        self.vu_id = vu_id
        self.iteration = 0
        self.rng = rng
        self.metrics = metrics
        self.base_url = base_url.rstrip("/")
        self._client = client

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def pick(self, specs: Sequence[RequestSpec]) -> RequestSpec:
        return weighted_choice(specs, self.rng)

    async def request(self, spec: Union[RequestSpec, str]) -> RequestOutcome:
        """
        Issue one request and record it in the built-in HTTP metrics.

        Network-level failures never raise; they come back as status 0.
        """
        if isinstance(spec, str):
            spec = RequestSpec.get(spec)
        url = self.url(spec.path)
        started = time.perf_counter()
        try:
            response = await self._client.request(
                spec.method,
                url,
                json=spec.json,
                headers=dict(spec.headers) if spec.headers else None,
            )
            body = response.content
            outcome = RequestOutcome(
                status=response.status_code,
                body=body,
                elapsed_ms=(time.perf_counter() - started) * 1000.0,
                expected_error=spec.expect_error,
                method=spec.method,
                url=url,
                name=spec.label,
            )
        except httpx.HTTPError as exc:
            failure = RequestFailure(
                f"{type(exc).__name__}: {exc}", method=spec.method, url=url
            )
            logger.debug("VU %d request failed: %s", self.vu_id, failure.message)
            outcome = RequestOutcome(
                status=0,
                elapsed_ms=(time.perf_counter() - started) * 1000.0,
                expected_error=spec.expect_error,
                error=failure.message,
                method=spec.method,
                url=url,
                name=spec.label,
            )
        self.metrics.record_request(outcome)
        return outcome

    async def batch(self, specs: Sequence[Union[RequestSpec, str]]) -> List[RequestOutcome]:
        """Issue all requests concurrently; return once every one completed."""
        return list(await asyncio.gather(*(self.request(spec) for spec in specs)))

    def check(self, outcome: RequestOutcome, checks: Mapping[str, Check]) -> bool:
        """
        Evaluate every named predicate; return True only if all passed.

        A failing check never aborts the iteration.
        """
        all_passed = True
        for name, predicate in checks.items():
            try:
                passed = bool(predicate(outcome))
            except Exception as exc:
                logger.debug("Check %r raised %s on VU %d", name, exc, self.vu_id)
                passed = False
            self.metrics.record_check(name, passed)
            all_passed = all_passed and passed
        return all_passed
