from __future__ import annotations

import argparse
import ast
import logging
import signal
import sys
import threading
from enum import Enum
from typing import Any, Iterable

from devices import CLOCK_PERIOD, Clock, Port
from isa import WORD_MASK, Opcode, Program, decode, disassemble, read_code


def bool2int(val: bool) -> int:
    return 1 if val else 0


class State(str, Enum):
    """ Состояние машины. Останов - конечное состояние, продолжение работы из него невозможно."""
    RUNNING = "running"
    HALTED = "halted"

    def __str__(self) -> str:
        return str(self.value)


class RegisterFile:
    """ Регистровый файл машины.

    Хранит значения и ничего не вычисляет: вся логика команд находится в ControlUnit.
    """

    a: int
    """ Аккумулятор A, 4 бита."""

    b: int
    """ Аккумулятор B, 4 бита."""

    carry: bool
    """ Флаг переноса."""

    pc: int
    """ Счётчик команд, 4 бита. Адресует ПЗУ; значение 16 принимает только при останове."""

    def __init__(self) -> None:
        self.a = 0
        self.b = 0
        self.carry = False
        self.pc = 0

    def __repr__(self) -> str:
        return "A: {:04b} | B: {:04b} | C: {} | PC: {:04b}".format(self.a, self.b, bool2int(self.carry), self.pc)


class ControlUnit:
    """Логический модуль машины, отвечающий за выборку, декодирование и исполнение команд.

    Владеет регистровым файлом и портом; программа только читается.
    """

    _tick: int
    """ Счётчик тактов с начала работы модели машины."""

    _state: State

    _instruction_register: int | None
    """ Регистр инструкций. Хранит слово, выбранное из ПЗУ в последнем такте."""

    _registers: RegisterFile

    _port: Port

    _program: Program
    """ ПЗУ, из которого модулем управления выбираются команды."""

    _debug: bool
    """ Выводить ли в лог состояние машины после каждого такта."""

    def __init__(self, program: Program | Iterable[int], port: Port | None = None, debug: bool = False) -> None:
        self._program = program if isinstance(program, Program) else Program(program)
        self._port = port if port is not None else Port()
        self._registers = RegisterFile()
        self._state = State.RUNNING
        self._instruction_register = None
        self._tick = 0
        self._debug = debug

    def __repr__(self) -> str:
        """Вернуть строковое представление состояния процессора."""
        instruction: str = disassemble(self._instruction_register) if self._instruction_register is not None else "-"
        return "TICK: {:3} | IR: '{:^9}' | {} | {}".format(
            self.get_tick(),
            instruction,
            self._registers.__repr__(),
            self._port.__repr__(),
        )

    @property
    def state(self) -> State:
        return self._state

    @property
    def registers(self) -> RegisterFile:
        return self._registers

    @property
    def port(self) -> Port:
        return self._port

    def perform_tick(self) -> None:
        """Увеличение счётчика тактов."""
        self._tick += 1

    def get_tick(self) -> int:
        return self._tick

    def _halt(self) -> None:
        self._state = State.HALTED
        raise StopIteration()

    def _select_instruction(self) -> None:
        """Выборка слова из ПЗУ по адресу счётчика команд.

        За пределами программы выбирается нулевое слово (ADD A,0)."""
        pc: int = self._registers.pc
        self._instruction_register = self._program[pc] if pc < len(self._program) else 0

    def signal_latch_a(self, value: int) -> None:
        self._registers.a = value & WORD_MASK

    def signal_latch_b(self, value: int) -> None:
        self._registers.b = value & WORD_MASK

    def signal_latch_programm_counter_register(self, value: int) -> None:
        """Запись в счётчик команд.

        Переходы задают адрес 0-15; инкремент с адреса 15 даёт 16, после чего машина останавливается.
        """
        self._registers.pc = value

    def _add(self, left: int, right: int) -> int:
        """Сложение по модулю 16.

        Флаг переноса только устанавливается при переполнении, но не сбрасывается при его отсутствии.
        """
        result: int = left + right
        if result > WORD_MASK:
            self._registers.carry = True
        return result & WORD_MASK

    def _output(self, value: int, source: str) -> None:
        self._port.signal_write_data(value)
        logging.info("Port {}Out: {:04b}".format(source, self._port.output))

    def _execute_instruction(self, instruction: Opcode | None, operand: int) -> None:
        registers: RegisterFile = self._registers
        match instruction:
            case None:
                assert self._instruction_register is not None
                logging.error("OpCode doesn't exist: {:04b}".format(self._instruction_register >> 4))
                self._halt()
            case Opcode.MOV_A:
                self.signal_latch_a(operand)
            case Opcode.MOV_B:
                self.signal_latch_b(operand)
            case Opcode.MOV_B_A:
                self.signal_latch_b(registers.a)
            case Opcode.MOV_A_B:
                self.signal_latch_a(registers.b)
            case Opcode.ADD_A:
                self.signal_latch_a(self._add(registers.a, operand))
            case Opcode.ADD_B:
                self.signal_latch_b(self._add(registers.b, operand))
            case Opcode.JMP:
                self.signal_latch_programm_counter_register(operand)
            case Opcode.JNC:
                if registers.carry:
                    self.signal_latch_programm_counter_register(registers.pc + 1)
                else:
                    self.signal_latch_programm_counter_register(operand)
            case Opcode.IN_A:
                self.signal_latch_a(self._port.input)
            case Opcode.IN_B:
                self.signal_latch_b(self._port.input)
            case Opcode.OUT_B:
                self._output(registers.b, "B ")
            case Opcode.OUT_IM:
                self._output(operand, "")
            case _:
                raise ValueError("Unknown opcode in instruction execute cycle")

        # Сложение единственное не сбрасывает флаг переноса
        if instruction not in {Opcode.ADD_A, Opcode.ADD_B}:
            registers.carry = False
        if instruction not in Opcode.control_flow_operations():
            self.signal_latch_programm_counter_register(registers.pc + 1)

    def execute_next_command(self) -> None:
        """Выполнение одного цикла выборки, декодирования и исполнения команды.

        При переходе машины в состояние останова возбуждается StopIteration.
        """
        if self._state is State.HALTED:
            raise StopIteration()
        self._select_instruction()
        assert self._instruction_register is not None
        opcode, operand = decode(self._instruction_register)
        self.perform_tick()

        self._execute_instruction(Opcode.lookup(opcode), operand)
        if self._debug:
            logging.info(self.__repr__())

        # Условие останова: счётчик команд вышел за пределы программы
        if self._registers.pc >= len(self._program):
            self._halt()


class Machine:
    """Модель 4-битной вычислительной машины.

    Связывает модуль управления с портом ввода/вывода и тактовым генератором, подаёт
    входные данные по расписанию и собирает вывод программы.
    """

    _control_unit: ControlUnit

    _port: Port

    _output_buffer: list[int]
    """ Значения, выведенные программой в порт, в порядке вывода."""

    def __init__(self, program: Program | Iterable[int], debug: bool = False) -> None:
        self._port = Port()
        self._control_unit = ControlUnit(program, port=self._port, debug=debug)
        self._output_buffer = []

    def __repr__(self) -> str:
        return self._control_unit.__repr__()

    @property
    def state(self) -> State:
        return self._control_unit.state

    @property
    def registers(self) -> RegisterFile:
        return self._control_unit.registers

    @property
    def port(self) -> Port:
        return self._port

    @property
    def output(self) -> list[int]:
        return list(self._output_buffer)

    @staticmethod
    def parse_schedule(list_tuple_text: str) -> list[tuple[int, int]]:
        """Парсинг расписания ввода по тактам: `[(<такт>, <значение>), ...]`."""
        if list_tuple_text.strip() == "":
            return []
        raw: Any = ast.literal_eval(list_tuple_text)
        if not isinstance(raw, (list, tuple)):
            raise ValueError("Schedule should be a list of (tick, value) pairs: {!r}".format(raw))
        schedule: list[tuple[int, int]] = []
        for entry in raw:
            if not (isinstance(entry, (tuple, list)) and len(entry) == 2):
                raise ValueError("Schedule entry should be a pair (tick, value): {!r}".format(entry))
            tick, value = entry
            if isinstance(tick, bool) or not (isinstance(tick, int) and tick >= 0):
                raise ValueError("Schedule tick should be a non-negative integer: {!r}".format(tick))
            if isinstance(value, bool) or not (isinstance(value, int) and 0 <= value <= WORD_MASK):
                raise ValueError("Schedule value doesn't fit into 4 bits: {!r}".format(value))
            schedule.append((tick, value))
        return schedule

    def _collect_output(self) -> None:
        value: int | None = self._port.take_new_data()
        if value is not None:
            self._output_buffer.append(value)
            print("{:04b}".format(value), flush=True)

    def simulation(self,
                   clock: Clock,
                   cancel: threading.Event | None = None,
                   input_schedule: Iterable[tuple[int, int]] = (),
                   limit: int | None = None
                   ) -> tuple[list[int], int, int]:
        """Запуск симуляции: по одному циклу команды на каждый такт генератора.

        Работа завершается остановом машины, сигналом отмены или исчерпанием лимита тактов.
        Элемент расписания `(t, v)` записывает `v` в защёлку ввода перед тактом с номером `t`
        (нумерация с нуля).

        Возвращает вывод программы, значение счётчика команд и кол-во исполненных тактов.
        """
        assert limit is None or limit > 0, "Simulation failed: Limit can not be negative or zero."
        if cancel is None:
            cancel = threading.Event()
        schedule: list[tuple[int, int]] = sorted(input_schedule)
        cur_schedule: int = 0
        try:
            while limit is None or self._control_unit.get_tick() < limit:
                if not clock.wait_tick(cancel):
                    logging.info("Cancelled at tick {}".format(self._control_unit.get_tick()))
                    break
                # Логика управления расписанием ввода
                while cur_schedule < len(schedule) and schedule[cur_schedule][0] <= self._control_unit.get_tick():
                    self._port.signal_input(schedule[cur_schedule][1])
                    logging.info("input: {:04b} >> port".format(self._port.input))
                    cur_schedule += 1
                self._control_unit.execute_next_command()
                self._collect_output()
        except StopIteration:
            self._collect_output()
            logging.info("Halted: {}".format(self.__repr__()))

        if self.state is State.RUNNING and limit is not None and self._control_unit.get_tick() >= limit:
            logging.warning("Instruction limit exceeded!")
        return (self.output,
                self.registers.pc,
                self._control_unit.get_tick())


def main(code_file: str,
         schedule_file: str | None = None,
         debug: bool = False,
         period: float = CLOCK_PERIOD,
         limit: int | None = None) -> None:
    """Функция запуска модели процессора. Параметры -- имя файла с машинным кодом и
    (необязательно) файла с расписанием ввода (формат [(<такт>, <значение>), ...]).

    Прерывание с клавиатуры (SIGINT) останавливает симуляцию между тактами.
    """
    program: Program
    input_schedule: list[tuple[int, int]] = []

    try:
        program = read_code(code_file)
    except (ValueError, OSError) as e:
        logging.error("Binary instructions can not be loaded properly: {}".format(e))
        return

    if schedule_file is not None:
        try:
            with open(schedule_file, encoding="utf-8") as file:
                input_schedule = Machine.parse_schedule(file.read())
        except (ValueError, SyntaxError, OSError) as e:
            logging.error("Input schedule can not be loaded properly: {}".format(e))
            return
        logging.info("Schedule: {}".format(input_schedule))

    machine: Machine = Machine(program, debug=debug)
    cancel: threading.Event = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())

    logging.info("--- start emulator ---")
    if debug:
        logging.info(machine.__repr__())
    try:
        output, pc, ticks = machine.simulation(
            clock=Clock(period),
            cancel=cancel,
            input_schedule=input_schedule,
            limit=limit,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    logging.info("--- end ---")
    logging.info("output: {} pc: {} ticks: {}".format(
        ["{:04b}".format(value) for value in output], pc, ticks))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="4-bit computer emulator")
    parser.add_argument("code_file", help="machine code produced by translator.py")
    parser.add_argument("-d", "--debug", action="store_true", help="log register/port dump after every step")
    parser.add_argument("--period", type=float, default=CLOCK_PERIOD, help="clock period in seconds")
    parser.add_argument("--limit", type=int, default=None, help="stop after this many ticks")
    parser.add_argument("--schedule", default=None, help="input schedule file: [(tick, value), ...]")
    parser.add_argument("--log", default=None, help="also write the log to this file")
    args = parser.parse_args()

    logging.getLogger().addHandler(logging.StreamHandler(sys.stderr))
    if args.log is not None:
        logging.getLogger().addHandler(logging.FileHandler(args.log))
    logging.getLogger().setLevel(logging.DEBUG)
    main(args.code_file, args.schedule, args.debug, args.period, args.limit)
