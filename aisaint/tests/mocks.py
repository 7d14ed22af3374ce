from types import SimpleNamespace

from aisaint.core.errors import StorageError, UpstreamError
from aisaint.features.conversations.store import ConversationStore


class FakeGenerator:
    """Stands in for ResponseGenerator; echoes the prompt unless told otherwise."""

    def __init__(self, reply: str = None, fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.prompts = []

    async def generate(self, prompt_text: str) -> str:
        self.prompts.append(prompt_text)
        if self.fail:
            raise UpstreamError("Failed to generate AI response. Please try again later.")
        return self.reply if self.reply is not None else f"echo: {prompt_text}"


class FakeCompletions:
    def __init__(self, content="Blessings to you.", error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, *args, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeAsyncGroq:
    def __init__(self, content="Blessings to you.", error=None):
        self.chat = SimpleNamespace(completions=FakeCompletions(content, error))


class FlakyStore(ConversationStore):
    """Real store with selected operations forced to fail."""

    def __init__(self, session_factory, failing=(), **kwargs):
        super().__init__(session_factory, **kwargs)
        self.failing = set(failing)
        self.calls = []

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if operation in self.failing:
            raise StorageError(operation, RuntimeError("simulated outage"))

    async def get_conversation(self, user_id, conversation_id=None):
        self._maybe_fail("get_conversation")
        return await super().get_conversation(user_id, conversation_id)

    async def append_exchange(self, user_id, conversation_id, user_message, assistant_message):
        self._maybe_fail("append_exchange")
        return await super().append_exchange(user_id, conversation_id, user_message, assistant_message)

    async def increment_message_count(self, user_id):
        self._maybe_fail("increment_message_count")
        return await super().increment_message_count(user_id)

    async def list_conversations(self, user_id, limit=50):
        self._maybe_fail("list_conversations")
        return await super().list_conversations(user_id, limit)

    async def get_user(self, user_id):
        self._maybe_fail("get_user")
        return await super().get_user(user_id)

    async def get_entitlement_record(self, user_id):
        self._maybe_fail("get_entitlement_record")
        return await super().get_entitlement_record(user_id)
