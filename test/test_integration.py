import contextlib
import io
import logging
import os
import tempfile

import pytest

import isa
import machine
import translator
from devices import Clock


@pytest.mark.golden_test("golden_tests/integration/*.yml")
def test_executing_example_programm(golden, caplog) -> None:
    """Golden tests для всех программ и модели компьютера."""
    caplog.set_level(logging.INFO)
    limit: int | None = golden["in_limit"] or None

    with tempfile.TemporaryDirectory() as tmpdir:
        source = os.path.join(tmpdir, "code.asm")
        binary = os.path.join(tmpdir, "target.bin")
        sched = os.path.join(tmpdir, "schedule")

        with open(source, "w", encoding="utf-8") as file:
            file.write(golden["in_program"])

        with open(sched, "w", encoding="utf-8") as file_schedule:
            file_schedule.write(golden["in_schedule"])

        translator.main(source, binary)
        caplog.clear()

        with contextlib.redirect_stdout(io.StringIO()) as stdout:
            machine.main(binary, sched, period=0, limit=limit)

        code: isa.Program = isa.read_code(binary)

    assert list(code) == golden.out["out_words"]
    assert [isa.disassemble(word) for word in code] == golden.out["out_mnemonics"]
    assert stdout.getvalue().split() == golden.out["out_machine_output"]
    assert caplog.messages[-1] == golden.out["out_summary"]

    # Конечное состояние машины после того же количества тактов
    model = machine.Machine(code)
    with contextlib.redirect_stdout(io.StringIO()):
        model.simulation(
            clock=Clock(0),
            input_schedule=machine.Machine.parse_schedule(golden["in_schedule"]),
            limit=limit,
        )
    assert repr(model.registers) == golden.out["out_registers"]
    assert str(model.state) == golden.out["out_state"]


def test_machine_rejects_oversized_code(caplog) -> None:
    """Программа длиннее ПЗУ не запускается."""
    with tempfile.TemporaryDirectory() as tmpdir:
        binary = os.path.join(tmpdir, "target.bin")
        with open(binary, "w", encoding="utf-8") as file:
            file.write("[" + ", ".join(["177"] * 17) + "]")

        with contextlib.redirect_stdout(io.StringIO()) as stdout:
            machine.main(binary, period=0)

    assert stdout.getvalue() == ""
    assert caplog.messages == ["Binary instructions can not be loaded properly: Rom size is over. Max size is 16."]


def test_translator_failure_writes_nothing(caplog) -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        source = os.path.join(tmpdir, "code.asm")
        binary = os.path.join(tmpdir, "target.bin")
        with open(source, "w", encoding="utf-8") as file:
            file.write("MOV A, 1\nHLT\n")

        translator.main(source, binary)

        assert not os.path.exists(binary)
    assert "Translation failed: Unknown instruction 'HLT', line: 2" in caplog.messages


def test_machine_rejects_malformed_schedule(caplog) -> None:
    """Расписание, не являющееся списком пар, не запускает машину."""
    with tempfile.TemporaryDirectory() as tmpdir:
        binary = os.path.join(tmpdir, "target.bin")
        sched = os.path.join(tmpdir, "schedule")
        with open(binary, "w", encoding="utf-8") as file:
            file.write("[177]")
        with open(sched, "w", encoding="utf-8") as file:
            file.write("5")

        with contextlib.redirect_stdout(io.StringIO()) as stdout:
            machine.main(binary, sched, period=0)

    assert stdout.getvalue() == ""
    assert caplog.messages == ["Input schedule can not be loaded properly: Schedule should be a list of (tick, value) pairs: 5"]
