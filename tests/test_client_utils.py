import pytest

from quizsync.client.identity import IdentityCache, PlayerIdentity
from quizsync.client import main_tui
from quizsync.client.sound_cues import CueService, null_cues
from quizsync.client.utils import (
    build_server_url,
    check_server_url,
    clean_name,
    format_remaining,
    generate_option_labels,
    normalize_server_arg,
    validate_port,
    verify_address,
)
from quizsync.config import DEFAULT_QUESTIONS, Settings
from quizsync.server.quiz_types import load_questions


def test_identity_cache_round_trip(tmp_path):
    cache = IdentityCache(tmp_path / "nested" / "me.json")
    assert cache.load() is None
    cache.save(PlayerIdentity("p1", "Ann", "s1"))
    assert cache.load() == PlayerIdentity("p1", "Ann", "s1")
    cache.clear()
    assert cache.load() is None
    cache.clear()


def test_corrupt_identity_cache_is_ignored(tmp_path):
    path = tmp_path / "me.json"
    path.write_text("{not json")
    assert IdentityCache(path).load() is None


def test_cues_stay_silent_until_initialised():
    bells = []
    cues = CueService(lambda: bells.append(1))
    assert cues.play("winner") == 0
    cues.init()
    assert cues.play("winner") == 3
    assert cues.play("click") == 0
    with pytest.raises(KeyError):
        cues.play("fanfare")
    cues.teardown()
    assert cues.play("join") == 0
    assert len(bells) == 3


def test_null_cues_never_ring():
    cues = null_cues()
    cues.init()
    assert cues.play("join") == 0


@pytest.mark.parametrize("host", ["127.0.0.1", "::1", "[::1]", "localhost", "quiz.school.edu"])
def test_valid_addresses(host):
    assert verify_address(host) == (True, "")


@pytest.mark.parametrize("host", ["", "bad host", "-x.com", "10.0.0"])
def test_invalid_addresses(host):
    ok, message = verify_address(host)
    assert not ok
    assert message


def test_port_validation():
    assert validate_port(" 8000 ") == (True, "", 8000)
    assert not validate_port("0")[0]
    assert not validate_port("http")[0]


def test_server_url_helpers():
    assert build_server_url("192.168.1.20", "8000") == (True, "ws://192.168.1.20:8000")
    assert build_server_url("::1", 9000) == (True, "ws://[::1]:9000")
    assert build_server_url("nope nope", 80)[0] is False
    assert check_server_url("wss://quiz.school.edu") == (True, "")
    assert check_server_url("http://10.0.0.5:8000")[0] is False
    assert check_server_url("ws://bad host:8000")[0] is False
    assert check_server_url("ws://10.0.0.5:99999")[0] is False


@pytest.mark.parametrize("value, url", [
    ("ws://10.0.0.5:9001/", "ws://10.0.0.5:9001"),
    ("10.0.0.5:9001", "ws://10.0.0.5:9001"),
    ("[::1]:8000", "ws://[::1]:8000"),
    ("localhost:8000", "ws://localhost:8000"),
])
def test_server_argument_is_normalized(value, url):
    assert normalize_server_arg(value) == (True, url)


@pytest.mark.parametrize("value", ["10.0.0.5", "bad host:8000", "10.0.0.5:0", "ftp://10.0.0.5:21"])
def test_bad_server_argument_is_refused(value):
    ok, message = normalize_server_arg(value)
    assert not ok
    assert message


@pytest.fixture
def no_log_files(monkeypatch):
    monkeypatch.setattr(main_tui, "configure_logging", lambda role, log_dir: None)


def test_cli_server_argument(no_log_files):
    settings = main_tui._settings(["192.168.1.20:8000"], "player", environ={})
    assert settings.server_url == "ws://192.168.1.20:8000"
    assert main_tui._settings([], "host", environ={}).server_url == "ws://127.0.0.1:8000"


def test_cli_rejects_a_bad_server(no_log_files, capsys):
    with pytest.raises(SystemExit) as info:
        main_tui._settings(["not a host:80"], "player", environ={})
    assert info.value.code == 2
    assert "valid IPv4/IPv6" in capsys.readouterr().err
    with pytest.raises(SystemExit):
        main_tui._settings([], "player", environ={"QUIZSYNC_SERVER": "http://x:1"})


def test_clean_name():
    assert clean_name("  Ann  ") == (True, "Ann")
    assert clean_name("a/b\\c") == (True, "a_b_c")
    assert clean_name("x" * 30) == (True, "x" * 20)
    assert clean_name(" ")[0] is False


def test_display_helpers():
    assert generate_option_labels(4) == ["A", "B", "C", "D"]
    assert format_remaining(75) == "01:15"
    assert format_remaining(-3) == "00:00"


def test_settings_from_env(tmp_path):
    settings = Settings.from_env({
        "QUIZSYNC_TEACHER_PASSWORD": "s3cret",
        "QUIZSYNC_PORT": "9100",
        "QUIZSYNC_LOG_DIR": str(tmp_path),
        "QUIZSYNC_TIME_BUDGET": "15",
    })
    assert settings.teacher_password == "s3cret"
    assert settings.port == 9100
    assert settings.log_dir == tmp_path
    assert settings.time_budget == 15
    assert Settings.from_env({}).teacher_password == "teacher123"


def test_bundled_quiz_loads():
    questions = load_questions(DEFAULT_QUESTIONS)
    assert len(questions) == 5
    assert [q.id for q in questions] == [1, 2, 3, 4, 5]
    assert all(len(q.options) == 4 for q in questions)
