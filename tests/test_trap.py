"""Tests for mutation traps: in-place changes to object-valued properties."""

from collections import deque

import pytest

from propwatch import ObservedObject, Session
from propwatch._clone import unwrap
from propwatch.trap import is_mutator


class Box:
    def __init__(self, **attrs):
        self.__dict__.update(attrs)


class Counter:
    def __init__(self):
        self.n = 0

    def bump(self, by=1):
        self.n += by
        return self

    def peek(self):
        return self.n


@pytest.fixture
def session():
    s = Session({"observe_deletion": False})
    yield s
    s.close()


def _watched(session, **attrs):
    t = Box(**attrs)
    log = []
    session.observe(t, list(attrs), lambda path, old, new: log.append((path, old, new)))
    return t, log


class TestMemberWrites:
    def test_nested_key_write(self, session):
        t, log = _watched(session, p={"a": 1})
        t.p["a"] = 2
        assert len(log) == 1
        path, old, new = log[0]
        assert path == "p"
        assert old["a"] == 1
        assert new["a"] == 2
        assert new is t.p

    def test_nested_attribute_write(self, session):
        t, log = _watched(session, p=Box(a=1))
        t.p.a = 2
        path, old, new = log[0]
        assert path == "p"
        assert old.a == 1
        assert new.a == 2
        assert t.p.a == 2

    def test_key_deletion(self, session):
        t, log = _watched(session, p={"a": 1, "b": 2})
        del t.p["a"]
        assert log[0][1] == {"a": 1, "b": 2}
        assert t.p == {"b": 2}

    def test_attribute_deletion(self, session):
        t, log = _watched(session, p=Box(a=1, b=2))
        del t.p.a
        assert len(log) == 1
        assert not hasattr(t.p, "a")

    def test_snapshot_follows_live_value(self, session):
        t, log = _watched(session, p={"a": 1})
        t.p["b"] = [1]
        snapshot = session.registry.snapshot(t, "p")
        assert snapshot == {"a": 1, "b": [1]}
        assert snapshot is not unwrap(t.p)
        assert snapshot["b"] is not t.p["b"]


class TestMethodCalls:
    def test_list_append(self, session):
        t, log = _watched(session, items=[1, 2])
        t.items.append(3)
        assert log == [("items", [1, 2], [1, 2, 3])]
        assert session.registry.snapshot(t, "items") == [1, 2, 3]

    def test_one_notification_per_call(self, session):
        t, log = _watched(session, items=[3, 1, 2])
        t.items.sort()
        t.items.extend([4, 5])
        assert len(log) == 2
        assert t.items == [1, 2, 3, 4, 5]

    def test_read_methods_do_not_notify(self, session):
        t, log = _watched(session, items=[1, 2, 2], conf={"a": 1})
        assert t.items.index(2) == 1
        assert t.items.count(2) == 2
        assert t.conf.get("a") == 1
        assert list(t.conf.keys()) == ["a"]
        assert log == []

    def test_return_value_passes_through(self, session):
        t, log = _watched(session, items=[1, 2])
        assert t.items.pop() == 2
        assert log[0][1] == [1, 2]

    def test_failed_mutation_does_not_notify(self, session):
        t, log = _watched(session, items=[1])
        with pytest.raises(ValueError):
            t.items.remove(99)
        assert log == []
        assert session.registry.snapshot(t, "items") == [1]

    def test_dict_methods(self, session):
        t, log = _watched(session, conf={"a": 1})
        t.conf.update(b=2)
        assert t.conf.setdefault("c", 3) == 3
        t.conf.pop("a")
        assert len(log) == 3
        assert session.registry.snapshot(t, "conf") == {"b": 2, "c": 3}

    def test_set_methods(self, session):
        t, log = _watched(session, tags={"a"})
        t.tags.add("b")
        t.tags.discard("a")
        assert log[0][1] == {"a"}
        assert t.tags == {"b"}

    def test_deque_methods(self, session):
        t, log = _watched(session, q=deque([1]))
        t.q.appendleft(0)
        assert list(t.q) == [0, 1]
        assert len(log) == 1

    def test_record_method(self, session):
        t, log = _watched(session, c=Counter())
        t.c.bump(2)
        assert len(log) == 1
        path, old, new = log[0]
        assert old.n == 0
        assert new.n == 2
        assert session.registry.snapshot(t, "c").n == 2

    def test_fluent_method_returns_wrapper(self, session):
        t, log = _watched(session, c=Counter())
        t.c.bump().bump()
        assert t.c.n == 2
        assert len(log) == 2

    def test_old_value_is_stable(self, session):
        t, log = _watched(session, items=[1])
        t.items.append(2)
        t.items.append(3)
        assert log[0][1] == [1]
        assert log[1][1] == [1, 2]


class TestAugmentedAssignment:
    def test_list_iadd_notifies_once(self, session):
        t, log = _watched(session, items=[1, 2])
        t.items += [3]
        assert len(log) == 1
        assert t.items == [1, 2, 3]
        assert isinstance(t.items, ObservedObject)

    def test_set_ior(self, session):
        t, log = _watched(session, tags={"a"})
        t.tags |= {"b"}
        assert len(log) == 1
        assert t.tags == {"a", "b"}

    def test_self_assignment_notifies(self, session):
        t, log = _watched(session, items=[1])
        t.items = t.items
        assert len(log) == 1
        assert log[0][1] == [1]
        assert t.items == [1]

    def test_self_assignment_after_iadd_notifies(self, session):
        t, log = _watched(session, items=[1])
        t.items += [2]
        t.items = t.items
        assert len(log) == 2

    def test_unclaimed_iadd_does_not_swallow_later_write(self, session):
        t, log = _watched(session, items=[1])
        held = t.items
        held += [2]
        t.items = t.items
        assert len(log) == 2
        assert t.items == [1, 2]

    def test_stale_wrapper_write_back_notifies(self, session):
        t, log = _watched(session, items=[1])
        held = t.items
        t.items = [9]
        held += [2]
        t.items = held
        assert len(log) == 2
        assert t.items == [1, 2]

    def test_record_without_iadd_falls_back_to_assignment(self, session):
        t, log = _watched(session, c=Counter())
        with pytest.raises(TypeError):
            t.c += 1
        assert log == []


class TestTransparency:
    def test_isinstance_and_repr(self, session):
        t, _ = _watched(session, items=[1, 2], c=Counter())
        assert isinstance(t.items, list)
        assert isinstance(t.c, Counter)
        assert repr(t.items) == "[1, 2]"
        assert list(reversed(t.items)) == [2, 1]
        assert 2 in t.items

    def test_operators_forward(self, session):
        t, log = _watched(session, items=[1])
        assert t.items + [2] == [1, 2]
        assert [0] + t.items == [0, 1]
        assert t.items < [2]
        assert log == []

    def test_attribute_reads_do_not_notify(self, session):
        t, log = _watched(session, c=Counter())
        assert t.c.n == 0
        assert log == []

    def test_record_methods_count_as_mutations(self, session):
        """Any method on a record may mutate it, so every call notifies."""
        t, log = _watched(session, c=Counter())
        assert t.c.peek() == 0
        assert len(log) == 1


class TestMutationPolicy:
    @pytest.mark.parametrize(
        "obj,name,expected",
        [
            ([], "append", True),
            ([], "index", False),
            ({}, "update", True),
            ({}, "get", False),
            (set(), "add", True),
            (set(), "union", False),
            (bytearray(), "extend", True),
            (deque(), "popleft", True),
        ],
    )
    def test_containers(self, obj, name, expected):
        assert is_mutator(obj, name) is expected

    def test_records(self):
        c = Counter()
        assert is_mutator(c, "bump")
        assert not is_mutator(c, "n")
        assert not is_mutator(c, "__init__")


class TestSnapshotSync:
    """The committed snapshot stays equal to the live value, step by step."""

    @staticmethod
    def _assert_in_sync(session, t, name):
        snapshot = session.registry.snapshot(t, name)
        live = unwrap(getattr(t, name))
        assert snapshot == live
        assert snapshot is not live

    def test_sequence_operations(self, session):
        t, log = _watched(session, items=[3, -1, 2, -5])
        t.items[0] = 4
        self._assert_in_sync(session, t, "items")
        t.items.pop(1)
        self._assert_in_sync(session, t, "items")
        t.items.sort(key=abs)
        self._assert_in_sync(session, t, "items")
        t.items[1:2] = [7, 8, 9]
        self._assert_in_sync(session, t, "items")
        del t.items[::2]
        self._assert_in_sync(session, t, "items")
        t.items *= 2
        self._assert_in_sync(session, t, "items")
        assert len(log) == 6

    def test_mapping_operations(self, session):
        t, log = _watched(session, conf={"a": [1], "b": 2})
        t.conf["c"] = {"d": 1}
        self._assert_in_sync(session, t, "conf")
        t.conf |= {"b": 3, "e": 4}
        self._assert_in_sync(session, t, "conf")
        t.conf.pop("a")
        self._assert_in_sync(session, t, "conf")
        t.conf.setdefault("f", [1])
        self._assert_in_sync(session, t, "conf")
        assert t.conf == {"b": 3, "c": {"d": 1}, "e": 4, "f": [1]}
        assert len(log) == 4

    def test_set_and_record_operations(self, session):
        t, log = _watched(session, tags={"a", "b"}, c=Counter())
        t.tags -= {"a"}
        t.tags.symmetric_difference_update({"b", "c"})
        self._assert_in_sync(session, t, "tags")
        t.c.bump(3)
        t.c.label = "x"
        snapshot = session.registry.snapshot(t, "c")
        assert vars(snapshot) == vars(unwrap(t.c)) == {"n": 3, "label": "x"}
        assert snapshot is not unwrap(t.c)
        assert len(log) == 4
