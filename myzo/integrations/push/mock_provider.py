from __future__ import annotations

from myzo.integrations.push.base import PushProvider, PushResult


class MockPushProvider(PushProvider):
    """
    Records messages in memory; tokens starting with ``invalid`` are reported
    unregistered. Like FCM it refuses a multicast of more than 500 tokens.
    """

    name = "mock"
    max_tokens = 500
    sent: list[dict] = []
    batches: list[int] = []

    def send_multicast(self, *, tokens: list[str], title: str, body: str, data: dict | None = None) -> PushResult:
        if len(tokens) > self.max_tokens:
            raise ValueError(f"tokens must not contain more than {self.max_tokens} items")
        MockPushProvider.batches.append(len(tokens))
        result = PushResult()
        for token in tokens:
            if token.startswith("invalid"):
                result.failure_count += 1
                result.invalid_tokens.append(token)
                continue
            result.success_count += 1
            MockPushProvider.sent.append({"token": token, "title": title, "body": body, "data": dict(data or {})})
        return result

    @classmethod
    def reset(cls) -> None:
        cls.sent.clear()
        cls.batches.clear()
