import pytest

from codejudge.core.errors import UnsupportedLanguage
from codejudge.runners import registry
from codejudge.runners.base import Command, LanguageAdapter


def test_supported_set():
    assert registry.supported_languages() == ["cpp", "java", "javascript", "python"]


def test_python_has_no_build_step(tmp_path):
    plan = registry.resolve("python", tmp_path, "print(1)", memory_mb=256,
                            runtimes={"python": "/opt/py/bin/python3"})
    assert plan.build_command is None
    assert plan.run_command.argv == ["/opt/py/bin/python3", "solution.py"]
    assert plan.source_path == tmp_path / "solution.py"


def test_cpp_build_and_run(tmp_path):
    plan = registry.resolve("cpp", tmp_path, "int main(){}", memory_mb=256)
    assert plan.build_command.argv[0] == "g++"
    assert "-std=c++17" in plan.build_command.argv
    assert plan.run_command.argv == [str(tmp_path / "solution")]
    assert plan.run_command.limit_address_space
    assert plan.run_command.cpu_scale == 1.0


def test_java_uses_heap_flag_instead_of_address_limit(tmp_path):
    plan = registry.resolve("java", tmp_path, "class Solution {}", memory_mb=256)
    assert plan.source_path.name == "Solution.java"
    assert plan.build_command.argv[0] == "javac"
    assert "-Xmx224m" in plan.run_command.argv
    assert not plan.run_command.limit_address_space


def test_jvm_is_held_to_one_cpu_with_cpu_time_headroom(tmp_path):
    plan = registry.resolve("java", tmp_path, "class Solution {}", memory_mb=256)
    run = plan.run_command
    assert "-XX:ActiveProcessorCount=1" in run.argv
    assert "-XX:+UseSerialGC" in run.argv
    assert run.argv.index("-XX:ActiveProcessorCount=1") < run.argv.index("Solution")
    assert run.cpu_scale > 1
    assert plan.build_command.cpu_scale > 1


def test_javascript_heap_flag(tmp_path):
    plan = registry.resolve("javascript", tmp_path, "", memory_mb=128)
    assert "--max-old-space-size=96" in plan.run_command.argv
    assert plan.run_command.cpu_scale > 1


def test_unknown_language_is_rejected(tmp_path):
    with pytest.raises(UnsupportedLanguage) as exc:
        registry.resolve("cobol", tmp_path, "", memory_mb=64)
    assert exc.value.language == "cobol"


def test_resolve_writes_nothing_until_asked(tmp_path):
    plan = registry.resolve("python", tmp_path, "print('hi')\n", memory_mb=64)
    assert list(tmp_path.iterdir()) == []
    plan.write_source()
    assert [p.name for p in tmp_path.iterdir()] == ["solution.py"]
    assert (tmp_path / "solution.py").read_text() == "print('hi')\n"


def test_registration_adds_a_language(tmp_path):
    class Brainfuck(LanguageAdapter):
        name = "bf"
        source_name = "prog.bf"

        def run_command(self, workdir, memory_mb, runtimes):
            return Command(argv=["bf", self.source_name])

    registry.register(Brainfuck())
    try:
        assert "bf" in registry.supported_languages()
        assert registry.resolve("bf", tmp_path, "+", memory_mb=64).run_command.argv == ["bf", "prog.bf"]
    finally:
        registry.unregister("bf")
    with pytest.raises(UnsupportedLanguage):
        registry.get_adapter("bf")
