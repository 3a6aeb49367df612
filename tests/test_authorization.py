import asyncio
import webbrowser

from bunkerclient.client.application.authorization import AuthorizationChannel
from bunkerclient.client.infrastructure.persistence import LAST_AUTH_URL_KEY, MemoryStore

URL = "https://signer.example/auth/123"


def test_interactive_challenge_opens_url(opener):
    """Test interactive challenges go to the opener and are persisted."""
    store = MemoryStore()
    seen = []
    channel = AuthorizationChannel(store, interactive=True, opener=opener)
    channel.observe(seen.append)

    pending = channel.handle_challenge(URL)

    assert opener.urls == [URL]
    assert seen == []
    assert pending.url == URL
    assert store.get(LAST_AUTH_URL_KEY) == URL
    assert channel.last_url() == URL


def test_silent_challenge_notifies_observers(opener):
    """Test silent challenges never open anything."""
    channel = AuthorizationChannel(MemoryStore(), interactive=True, opener=opener)
    seen = []
    channel.observe(lambda pending: seen.append(pending.url))

    channel.handle_challenge(URL, silent=True)

    assert opener.urls == []
    assert seen == [URL]


def test_non_interactive_notifies_observers(opener):
    """Test non-interactive clients always hand challenges to observers."""
    channel = AuthorizationChannel(MemoryStore(), interactive=False, opener=opener)
    seen = []
    channel.observe(lambda pending: seen.append(pending.url))

    channel.handle_challenge(URL)

    assert opener.urls == []
    assert seen == [URL]


def test_failed_open_falls_back_to_observers():
    """Test a browser failure still surfaces the URL."""

    def broken_opener(url):
        raise webbrowser.Error("no browser")

    channel = AuthorizationChannel(MemoryStore(), opener=broken_opener)
    seen = []
    channel.observe(lambda pending: seen.append(pending.url))

    channel.handle_challenge(URL)

    assert seen == [URL]


def test_observer_errors_are_contained(opener):
    """Test a failing observer does not break the others or the caller."""
    channel = AuthorizationChannel(MemoryStore(), interactive=False, opener=opener)
    seen = []

    def bad(pending):
        msg = "handler bug"
        raise RuntimeError(msg)

    channel.observe(bad)
    channel.observe(lambda pending: seen.append(pending.url))

    channel.handle_challenge(URL)

    assert seen == [URL]


def test_unsubscribe(opener):
    """Test the function returned by observe removes the handler."""
    channel = AuthorizationChannel(MemoryStore(), interactive=False, opener=opener)
    seen = []
    unsubscribe = channel.observe(lambda pending: seen.append(pending.url))

    unsubscribe()
    channel.handle_challenge(URL)

    assert seen == []


def test_wait_until_resolved(opener):
    """Test waiting for a pending challenge to be cleared."""

    async def main():
        channel = AuthorizationChannel(MemoryStore(), opener=opener)
        assert await channel.wait_until_resolved(0.01)
        channel.handle_challenge(URL)
        assert not await channel.wait_until_resolved(0.01)
        asyncio.get_running_loop().call_soon(channel.clear)
        return await channel.wait_until_resolved(1.0)

    assert asyncio.run(main())
