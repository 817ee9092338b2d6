from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PushResult:
    success_count: int = 0
    failure_count: int = 0
    # Tokens the provider reported as permanently unusable; callers delete them.
    invalid_tokens: list[str] = field(default_factory=list)


class PushProvider:
    name = "unknown"

    def send_multicast(self, *, tokens: list[str], title: str, body: str, data: dict | None = None) -> PushResult:
        raise NotImplementedError
