import threading

from geras.safemap import TypedMap


def test_store_and_load():
    m = TypedMap()
    assert m.load("missing") is None
    m.store("foo", 42)
    assert m.load("foo") == 42
    assert "foo" in m


def test_delete():
    m = TypedMap()
    m.store("a", "apple")
    assert m.load("a") == "apple"
    m.delete("a")
    assert m.load("a") is None
    assert "a" not in m


def test_delete_missing_key_is_ignored():
    m = TypedMap()
    m.delete("nothing")
    assert len(m) == 0


def test_range_full_and_early_exit():
    m = TypedMap()
    m.store("k1", 1)
    m.store("k2", 2)
    m.store("k3", 3)

    seen = {}

    def collect(key, value):
        seen[key] = value
        return True

    result = m.range(collect)
    assert result is None
    assert seen == {"k1": 1, "k2": 2, "k3": 3}
    assert len(m) == 3
    assert m.load("k2") == 2

    count = 0

    def stop(key, value):
        nonlocal count
        count += 1
        return False

    m.range(stop)
    assert count == 1
    assert sorted(iter(m)) == ["k1", "k2", "k3"]


def test_range_empty():
    m = TypedMap()
    calls = []
    m.range(lambda k, v: calls.append(k) or True)
    assert calls == []
    assert len(m) == 0


def test_concurrent_stores():
    m = TypedMap()

    def writer(prefix):
        for i in range(100):
            m.store(f"{prefix}-{i}", i)

    threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(m) == 400
    assert sorted(iter(m))[0] == "a-0"