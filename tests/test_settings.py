from pathlib import Path

from codejudge.core.settings import Settings, load_settings


def test_defaults():
    s = Settings()
    assert s.compile_timeout_s == 10.0
    assert s.test_workers == 1
    assert s.cgroup_enabled is False
    assert s.seccomp_enabled is False


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("JUDGE_MAX_CONCURRENT_SUBMISSIONS", "9")
    assert Settings().max_concurrent_submissions == 9


def test_yaml_sections_override(tmp_path, monkeypatch):
    conf = tmp_path / "judge.yaml"
    conf.write_text(
        "work_root: /var/tmp/judge\n"
        "defaults:\n  compile_timeout_s: 20\n  test_workers: 4\n"
        "output:\n  max_stdout_bytes: 4096\n"
        "runtimes:\n  python: /usr/bin/python3.12\n"
        "cgroup:\n  enabled: true\n  base: /sys/fs/cgroup/judge\n"
        "seccomp:\n  enabled: false\n  policy: conf/other.yaml\n"
    )
    monkeypatch.setenv("JUDGE_TEST_WORKERS", "2")
    s = load_settings(conf)
    assert s.work_root == Path("/var/tmp/judge")
    assert s.compile_timeout_s == 20.0
    assert s.test_workers == 4
    assert s.max_stdout_bytes == 4096
    assert s.runtimes == {"python": "/usr/bin/python3.12"}
    assert s.cgroup_enabled is True
    assert s.cgroup_base == Path("/sys/fs/cgroup/judge")
    assert s.seccomp_policy == Path("conf/other.yaml")


def test_missing_file_keeps_env(tmp_path, monkeypatch):
    monkeypatch.setenv("JUDGE_LOG_LEVEL", "DEBUG")
    assert load_settings(tmp_path / "absent.yaml").log_level == "DEBUG"


def test_conf_path_from_env(tmp_path, monkeypatch):
    conf = tmp_path / "alt.yaml"
    conf.write_text("log_level: WARNING\n")
    monkeypatch.setenv("JUDGE_CONF", str(conf))
    assert load_settings().log_level == "WARNING"
