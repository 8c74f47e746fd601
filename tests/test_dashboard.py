from dashboard import SessionRegistry


class FakeSocket:
    def __init__(self):
        self.sent = []

    async def accept(self):
        pass

    async def send_text(self, message):
        self.sent.append(message)


async def test_unwatched_sessions_expire(store):
    registry = SessionRegistry(store)
    session = await registry.open("freelance")

    assert await registry.expire_idle(300, now=session.last_seen + 299) == []
    assert await registry.expire_idle(300, now=session.last_seen + 300) == [session.id]
    assert len(registry) == 0
    assert store.subscription_count == 0


async def test_requests_keep_a_session_alive(store):
    registry = SessionRegistry(store)
    session = await registry.open("appointments")
    opened_at = session.last_seen

    session.last_seen = opened_at - 1000
    registry.get(session.id)

    assert await registry.expire_idle(300, now=opened_at + 10) == []
    assert len(registry) == 1
    await registry.close_all()


async def test_watched_sessions_never_expire(store):
    registry = SessionRegistry(store)
    session = await registry.open("repairs")
    ws = FakeSocket()
    await session.connect(ws)

    assert await registry.expire_idle(300, now=session.last_seen + 10_000) == []
    assert len(ws.sent) == 1

    session.disconnect(ws)
    assert await registry.expire_idle(300, now=session.last_seen + 10_000) == [session.id]
