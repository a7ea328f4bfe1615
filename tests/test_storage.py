from gigsync.navigation import Navigator
from gigsync.storage import REDIRECT_PATH_KEY, TOKEN_KEY, USER_KEY, MemoryStorage, SqlStorage


def test_sql_storage_survives_reopen(tmp_path):
    url = f"sqlite:///{tmp_path / 'session.db'}"
    storage = SqlStorage(url)
    storage.set(TOKEN_KEY, "T1")
    storage.set(TOKEN_KEY, "T2")
    storage.set(USER_KEY, '{"id": "1"}')
    storage.close()

    reopened = SqlStorage(url)
    assert reopened.get(TOKEN_KEY) == "T2"
    assert sorted(reopened.keys()) == [TOKEN_KEY, USER_KEY]

    reopened.remove(TOKEN_KEY)
    reopened.remove("missing")
    assert reopened.get(TOKEN_KEY) is None
    assert reopened.keys() == [USER_KEY]
    reopened.close()


def test_memory_storage():
    storage = MemoryStorage({TOKEN_KEY: "T"})
    storage.remove(TOKEN_KEY)
    storage.remove(TOKEN_KEY)
    assert storage.get(TOKEN_KEY) is None


def test_navigator_does_not_remember_auth_pages():
    session_slots = MemoryStorage()
    navigator = Navigator("/login", session_storage=session_slots)
    navigator.remember_redirect()
    assert session_slots.get(REDIRECT_PATH_KEY) is None

    navigator.push("/freelancer/proposals")
    navigator.remember_redirect()
    assert navigator.pop_redirect() == "/freelancer/proposals"
    assert navigator.pop_redirect() is None
