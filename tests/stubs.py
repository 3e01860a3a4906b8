"""
Transport doubles for pymirror tests.
"""

from pymirror.transport import LocalTransport, MirrorTransport


class RecordingTransport(LocalTransport):
    """Local transport that keeps every request it carries."""

    def __init__(self, server):
        super().__init__(server)
        self.requests = []

    async def request(self, operation: str, body: str) -> str:
        self.requests.append((operation, body))
        return await super().request(operation, body)


class StubTransport(MirrorTransport):
    """Transport that answers with scripted response bodies."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def request(self, operation: str, body: str) -> str:
        self.requests.append((operation, body))
        if not self.responses:
            raise AssertionError("Unexpected request")
        return self.responses.pop(0)
