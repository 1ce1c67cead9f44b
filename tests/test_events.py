from types import SimpleNamespace

from bot.events import register_events


class FakeTree:
    def __init__(self):
        self.syncs = 0

    def copy_global_to(self, guild):
        self.guild = guild

    async def sync(self, guild=None):
        self.syncs += 1
        return [SimpleNamespace(name="link")]


class FakeScanner:
    def __init__(self):
        self.starts = 0

    def start(self, client):
        self.starts += 1


class FakeValidator:
    def __init__(self):
        self.calls = 0

    async def validate(self):
        self.calls += 1


class FakeBot:
    def __init__(self):
        self.handlers = {}
        self.startup_done = False
        self.config_failed = False
        self.user = SimpleNamespace(name="Linkgate")
        self.settings = SimpleNamespace(guild_id=1)
        self.directory = FakeValidator()
        self.tree = FakeTree()
        self.scanner = FakeScanner()
        self.admin_messages = []

    def event(self, fn):
        self.handlers[fn.__name__] = fn
        return fn

    async def send_admin(self, message):
        self.admin_messages.append(message)


async def test_reconnect_does_not_repeat_startup(db):
    bot = FakeBot()
    register_events(bot)
    on_ready = bot.handlers["on_ready"]

    await on_ready()
    await on_ready()

    assert bot.directory.calls == 1
    assert bot.tree.syncs == 1
    assert bot.scanner.starts == 1
    assert len(bot.admin_messages) == 1
