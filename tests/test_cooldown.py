import fakeredis
import pytest
import redis

from habeas.config import Settings
from habeas.judit import cooldown
from habeas.judit.cooldown import CooldownLimiter, JsonFileStore, MemoryStore, RedisStore


def test_second_attempt_inside_window_is_rejected(limiter, clock):
    key = cooldown.request_key("r1")
    assert limiter.try_acquire(key)
    assert not limiter.try_acquire(key)

    clock.advance(29_999)
    assert not limiter.is_available(key)
    assert limiter.remaining(key) == 1

    clock.advance(2)
    assert limiter.is_available(key)
    assert limiter.try_acquire(key)


def test_keys_do_not_interfere(limiter):
    assert limiter.try_acquire(cooldown.request_key("r1"))
    assert limiter.try_acquire(cooldown.request_key("r2"))
    assert limiter.try_acquire(cooldown.search_key("cpf:12345678909"))
    assert limiter.try_acquire(cooldown.history_sync_key("t1"))


def test_namespaces_are_prefixed():
    assert cooldown.request_key("1") == "juditCooldownReq:1"
    assert cooldown.search_key("cpf:1") == "juditCooldownKey:cpf:1"
    assert cooldown.history_sync_key("t1") == "juditCooldownKey:historySync:t1"
    assert cooldown.portal_key("cpf", "1") == "juditCooldownPortal:cpf:1"


def test_label_counts_down(limiter, clock):
    key = cooldown.request_key("r1")
    assert limiter.label(key) == "Atualizar"
    limiter.mark(key)
    assert limiter.label(key) == "Aguarde 30s"
    clock.advance(29_500)
    assert limiter.label(key) == "Aguarde 1s"
    clock.advance(500)
    assert limiter.label(key, idle="Sincronizar") == "Sincronizar"


def test_garbage_timestamp_is_treated_as_never_attempted(clock):
    limiter = CooldownLimiter(MemoryStore({"k": "ontem"}), clock)
    assert limiter.is_available("k")


def test_json_file_store_survives_restart(tmp_path, clock):
    path = tmp_path / "perfil" / "cooldowns.json"
    CooldownLimiter(JsonFileStore(str(path)), clock).mark("k")

    restarted = CooldownLimiter(JsonFileStore(str(path)), clock)
    assert not restarted.is_available("k")
    assert restarted.is_available("outra")


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "cooldowns.json"
    path.write_text("{corrompido", encoding="utf-8")
    store = JsonFileStore(str(path))
    assert store.get("k") is None
    store.set("k", "1")
    assert store.get("k") == "1"


def test_redis_store_uses_namespace(clock):
    client = fakeredis.FakeRedis()
    limiter = CooldownLimiter(RedisStore(client, namespace="teste:"), clock)
    limiter.mark("juditCooldownReq:r1")
    assert client.get("teste:juditCooldownReq:r1") == str(clock.now).encode()
    assert not limiter.is_available("juditCooldownReq:r1")


class _BrokenStore(MemoryStore):
    def get(self, key):
        raise redis.exceptions.ConnectionError("redis fora do ar")


def test_unreachable_redis_does_not_block_actions(clock):
    limiter = CooldownLimiter(_BrokenStore(), clock)
    assert limiter.is_available("k")


class _ReadOnlyRedisStore(MemoryStore):
    def set(self, key, value):
        raise redis.exceptions.ConnectionError("redis fora do ar")


class _ReadOnlyDiskStore(MemoryStore):
    def set(self, key, value):
        raise PermissionError("somente leitura")


@pytest.mark.parametrize("store_cls", [_ReadOnlyRedisStore, _ReadOnlyDiskStore])
def test_failed_write_does_not_block_actions(clock, store_cls):
    limiter = CooldownLimiter(store_cls(), clock)
    assert limiter.try_acquire("k")
    assert limiter.try_acquire("k")


@pytest.fixture
def use_settings(monkeypatch):
    def apply(**overrides):
        monkeypatch.setattr(cooldown, "settings", Settings(_env_file=None, **overrides))

    return apply


def test_store_defaults_to_profile_file(use_settings, tmp_path, clock):
    path = tmp_path / "cooldowns.json"
    use_settings(JUDIT_COOLDOWN_FILE=str(path))

    store = cooldown.build_store_from_settings()
    assert isinstance(store, JsonFileStore)

    CooldownLimiter(store, clock).mark("k")
    assert not CooldownLimiter(cooldown.build_store_from_settings(), clock).is_available("k")


def test_store_from_settings_redis(use_settings):
    use_settings(JUDIT_COOLDOWN_STORE="Redis", REDIS_HOST="cache.local", REDIS_PORT="6380", REDIS_DB="2")

    store = cooldown.build_store_from_settings()

    assert isinstance(store, RedisStore)
    kwargs = store.client.connection_pool.connection_kwargs
    assert (kwargs["host"], kwargs["port"], kwargs["db"]) == ("cache.local", 6380, 2)


def test_store_from_settings_memory(use_settings):
    use_settings(JUDIT_COOLDOWN_STORE="memory")
    assert isinstance(cooldown.build_store_from_settings(), MemoryStore)


def test_limiter_from_settings_uses_configured_window(use_settings, clock):
    use_settings(JUDIT_COOLDOWN_STORE="memory", JUDIT_COOLDOWN_MS=5_000)

    limiter = cooldown.build_limiter_from_settings(clock)
    limiter.mark("k")
    clock.advance(5_000)

    assert limiter.window_ms == 5_000
    assert limiter.is_available("k")
