import errno
import random

import pytest

from bladeop.faults import (
    DEFAULT_HOOK_POINTS,
    FaultHook,
    FaultRegistry,
    InjectMessage,
    probable,
    random_errno,
)


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def randrange(self, stop):
        return self.value


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def make_hook(message, mount_point="/mnt/data", rng=None):
    registry = FaultRegistry()
    registry.inject(message)
    sleep = SleepRecorder()
    return FaultHook(mount_point, registry, rng=rng, sleep=sleep), sleep


def test_message_json_round_trip():
    message = InjectMessage(methods=["read", "write"], path="/data", delay=10, percent=60, random=True, errno=28)
    assert InjectMessage.from_json(message.to_json()) == message


def test_message_wire_format():
    message = InjectMessage(methods=["read"], path="/data")
    assert message.to_json() == (
        '{"methods":["read"],"path":"/data","delay":0,"percent":0,"random":false,"errno":0}'
    )


def test_from_json_matches_field_names_case_insensitively():
    message = InjectMessage.from_json('{"Methods":["write"],"PATH":"/x","Errno":5,"extra":1}')
    assert message == InjectMessage(methods=["write"], path="/x", errno=5)


def test_from_json_null_gives_defaults():
    assert InjectMessage.from_json("null") == InjectMessage()


def test_from_json_accepts_bytes():
    assert InjectMessage.from_json(b'{"methods":["read"]}').methods == ["read"]


@pytest.mark.parametrize(
    "text",
    [
        "",
        "not json",
        "[1]",
        '{"delay":-1}',
        '{"delay":1.5}',
        '{"percent":"5"}',
        '{"random":1}',
        '{"errno":true}',
        '{"methods":"read"}',
        '{"methods":[1]}',
        '{"path":3}',
        f'{{"errno":{2**32}}}',
    ],
)
def test_from_json_rejects_invalid(text):
    with pytest.raises(ValueError):
        InjectMessage.from_json(text)


def test_registry_stores_rule_per_method():
    registry = FaultRegistry()
    message = InjectMessage(methods=["read", "open"], errno=5)
    registry.inject(message)
    assert registry.get("read") is message
    assert registry.get("open") is message
    assert registry.get("write") is None


def test_recover_clears_default_points_only():
    registry = FaultRegistry()
    registry.inject(InjectMessage(methods=list(DEFAULT_HOOK_POINTS) + ["open", "chmod"], errno=5))
    registry.recover()
    assert all(registry.get(method) is None for method in DEFAULT_HOOK_POINTS)
    assert registry.get("open") is not None
    assert registry.get("chmod").errno == 5


def test_no_rule_means_no_fault():
    hook, sleep = make_hook(InjectMessage(methods=["write"], errno=errno.EIO))
    assert hook.inject_fault("file.txt", "read") is None
    assert sleep.calls == []


def test_errno_rule_returns_that_error():
    hook, _ = make_hook(InjectMessage(methods=["read"], errno=errno.ENOSPC))
    error = hook.inject_fault("file.txt", "read")
    assert isinstance(error, OSError)
    assert error.errno == errno.ENOSPC
    assert error.filename == "file.txt"


def test_rule_path_must_prefix_actual_path():
    hook, _ = make_hook(InjectMessage(methods=["read"], path="/mnt/data/logs", errno=errno.EIO))
    assert hook.inject_fault("other/file", "read") is None
    assert hook.inject_fault("logs/app.log", "read").errno == errno.EIO
    assert hook.inject_fault("/logs/app.log", "read").errno == errno.EIO


def test_random_rule_uses_errno_range():
    hook, _ = make_hook(InjectMessage(methods=["read"], random=True), rng=random.Random(3))
    for _ in range(50):
        assert 0x7 <= hook.inject_fault("a", "read").errno < 0x36


def test_explicit_errno_wins_over_random():
    hook, _ = make_hook(InjectMessage(methods=["read"], random=True, errno=errno.EACCES), rng=FixedRandom(0))
    assert hook.inject_fault("a", "read").errno == errno.EACCES


def test_percent_rule_depends_on_draw():
    rule = InjectMessage(methods=["read"], percent=50, errno=errno.EIO)
    skipped, _ = make_hook(rule, rng=FixedRandom(60))
    hit, _ = make_hook(rule, rng=FixedRandom(10))
    assert skipped.inject_fault("a", "read") is None
    assert hit.inject_fault("a", "read").errno == errno.EIO


def test_delay_only_sleeps_without_error():
    hook, sleep = make_hook(InjectMessage(methods=["write"], delay=1000))
    assert hook.inject_fault("a", "write") is None
    assert sleep.calls == [1.0]


def test_pre_operation_raises_for_fault():
    hook, _ = make_hook(InjectMessage(methods=["mkdir"], errno=errno.EROFS))
    with pytest.raises(OSError) as info:
        hook.pre_operation("mkdir", "dir", 0o755)
    assert info.value.errno == errno.EROFS


def test_pre_operation_checks_second_path_of_rename():
    hook, _ = make_hook(InjectMessage(methods=["rename"], path="/mnt/data/target", errno=errno.EXDEV))
    with pytest.raises(OSError) as info:
        hook.pre_operation("rename", "source/a", "target/b")
    assert info.value.filename == "target/b"


def test_pre_operation_checks_only_first_argument_as_path():
    hook, sleep = make_hook(InjectMessage(methods=["write"], path="/mnt/data/x", errno=errno.EIO))
    hook.pre_operation("write", "y/file", "x/not-a-path")
    assert sleep.calls == []
    assert hook.inject_fault("x/file", "write").errno == errno.EIO


def test_pre_operation_rejects_unknown_method():
    hook, _ = make_hook(InjectMessage(methods=["read"]))
    with pytest.raises(ValueError):
        hook.pre_operation("teleport", "a")


def test_pre_release_ignores_error_but_sleeps():
    hook, sleep = make_hook(InjectMessage(methods=["release"], errno=errno.EIO, delay=1000))
    hook.pre_release("a")
    hook.pre_operation("release", "a")
    assert sleep.calls == [1.0, 1.0]


def test_random_errno_bounds():
    assert random_errno(FixedRandom(0)) == 0x7
    rng = random.Random(7)
    values = {random_errno(rng) for _ in range(2000)}
    assert min(values) >= 0x7
    assert max(values) < 0x36


def test_probable_compares_draw_with_percentage():
    rng = FixedRandom(50)
    assert probable(51, rng) is True
    assert probable(50, rng) is False
    assert probable(0, FixedRandom(0)) is False