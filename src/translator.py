from __future__ import annotations

import logging
import re
import sys

from isa import ROM_SIZE, WORD_MASK, Opcode, Program, encode, write_code


def instructions() -> set[str]:
    """ Полное множество команд, доступных к использованию в языке. """
    return {"mov", "add", "jmp", "jnc", "in", "out"}


def registers() -> set[str]:
    """ Имена регистров, которые могут выступать операндами. """
    return {"a", "b"}


def map_instruction_to_opcode(instruction: str, operands: tuple[str, ...]) -> Opcode | None:
    """ Отображение команды исходного кода и вида её операндов в код операции.

    Операнд-регистр обозначается своим именем, непосредственное значение - `im`.
    Первым операндом MOV/ADD указывается приёмник.
    """
    return {
        ("mov", ("a", "im")): Opcode.MOV_A,
        ("mov", ("b", "im")): Opcode.MOV_B,
        ("mov", ("b", "a")): Opcode.MOV_B_A,
        ("mov", ("a", "b")): Opcode.MOV_A_B,
        ("add", ("a", "im")): Opcode.ADD_A,
        ("add", ("b", "im")): Opcode.ADD_B,
        ("jmp", ("im",)): Opcode.JMP,
        ("jnc", ("im",)): Opcode.JNC,
        ("in", ("a",)): Opcode.IN_A,
        ("in", ("b",)): Opcode.IN_B,
        ("out", ("b",)): Opcode.OUT_B,
        ("out", ("im",)): Opcode.OUT_IM,
    }.get((instruction, operands))


class SourceTerm:
    """ Структура для представления строки исходного кода. """

    line: int
    terms: list[str]

    def __init__(self, line_num: int, line_split: list[str]) -> None:
        self.line = line_num
        self.terms = line_split

    def __str__(self) -> str:
        return "line: {}, terms: {}\n".format(self.line, self.terms)

    def __repr__(self) -> str:
        return self.__str__()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SourceTerm):
            return self.line == other.line and self.terms == other.terms
        return False


class StatementTerm:
    """ Структура для описания команды с аргументом из кода программы."""
    label: str | None
    opcode: Opcode | None
    arg: str | None
    # Source code reference
    line: int | None

    def __init__(self, opcode: Opcode | None = None, label: str | None = None,
                 arg: str | None = None, line: int | None = None) -> None:
        self.label = label
        self.opcode = opcode
        self.arg = arg
        self.line = line

    def __str__(self) -> str:
        return {key: value for key, value in self.__dict__.items() if value is not None}.__str__()

    def __repr__(self) -> str:
        return self.__str__()


def try_convert_str_to_int(num_str: str) -> int | None:
    """ Числа записываются в десятичном виде или с префиксами `0b`, `0x`."""
    try:
        return int(num_str, 0)
    except ValueError:
        pass
    try:
        return int(num_str)
    except ValueError:
        return None


def split_by_spec_symbols(elem: str) -> list[str]:
    tmp: list[str] = re.split(r"(\:|\;|\,)", elem)
    while "" in tmp:
        tmp.remove("")
    return tmp


def filter_comments_on_line(terms: list[str]) -> list[str]:
    if ";" in terms:
        terms = terms[:terms.index(";")]
    return terms


def split_programm_line_to_terms(line: str) -> list[str]:
    complete_terms: list[str] = []
    for term in line.strip().split():
        complete_terms.extend(split_by_spec_symbols(term))
    return complete_terms


def split_text_to_source_terms(programm_text: str) -> list[SourceTerm]:
    source_terms: list[SourceTerm] = []
    term_line: list[str] = []
    # Нумерация строк исходного кода
    for line_num, line in enumerate(programm_text.split("\n"), 1):
        term_line = split_programm_line_to_terms(line)
        term_line = filter_comments_on_line(term_line)
        if len(term_line) == 0:
            continue
        source_terms.append(SourceTerm(line_num, term_line))
    return source_terms


def match_label(term: SourceTerm) -> str | None:
    """ Проверка строки SourceTerm на наличие объявления лейбла.

    Возвращает имя лейбла при наличии и None иначе.
    """
    line: list[str] = term.terms
    if ":" not in line:
        return None
    assert len(line) >= 2 and line[1] == ":", "Translation failed: Label name is not correct, line: {}".format(term.line)  # noqa: PT018
    assert line[0].lower() not in instructions(), "Translation failed: Label name can't be instruction name, line: {}".format(term.line)
    assert line[0].lower() not in registers(), "Translation failed: Label name can't be register name, line: {}".format(term.line)
    res = re.fullmatch(r"[a-zA-Z_][\w]*", line[0], 0)
    assert res is not None, "Translation failed: Label name doesn't match requirements, line: {}".format(term.line)
    return line[0]


def map_term_to_statement(term: SourceTerm) -> StatementTerm:
    """ Преобразование строки исходной программы в выражение машинного кода.

    Аргумент остаётся строкой (числом или именем лейбла) до связывания.
    Возвращаемое выражение:
    - ЛИБО лейбл без Opcode (когда в исходном коде лейбл отдельно от команды)
    - ЛИБО команда без лейбла
    - ЛИБО команда с лейблом
    """
    statement: StatementTerm = StatementTerm(line = term.line)
    terms: list[str] = list(term.terms)
    statement.label = match_label(term)
    # Убираем имя лейбла из выражения при наличии
    if statement.label is not None:
        del terms[:2]
    if len(terms) == 0:
        return statement

    instruction: str = terms[0].lower()
    assert instruction in instructions(), "Translation failed: Unknown instruction '{}', line: {}".format(terms[0], term.line)

    operands: list[str] = terms[1:]
    assert ":" not in operands, "Translation failed: Unexpected colon, line: {}".format(term.line)
    assert len(operands) % 2 == 1 or len(operands) == 0, "Translation failed: Operands should be separated by comma, line: {}".format(term.line)
    assert all(separator == "," for separator in operands[1::2]), "Translation failed: Operands should be separated by comma, line: {}".format(term.line)
    args: list[str] = operands[::2]
    assert "," not in args, "Translation failed: Missed operand, line: {}".format(term.line)

    kinds: tuple[str, ...] = tuple(arg.lower() if arg.lower() in registers() else "im" for arg in args)
    opcode: Opcode | None = map_instruction_to_opcode(instruction, kinds)
    assert opcode is not None, "Translation failed: Operands don't match instruction '{}', line: {}".format(terms[0], term.line)
    statement.opcode = opcode

    immediates: list[str] = [arg for arg in args if arg.lower() not in registers()]
    statement.arg = immediates[0] if immediates else None
    return statement


def map_terms_to_statements(source_terms: list[SourceTerm]) -> tuple[list[StatementTerm], dict[str, int]]:
    """ Построение списка команд и адресов лейблов.

    Лейбл, записанный отдельной строкой, относится к следующей команде. Лейбл в конце программы
    указывает на адрес сразу за последней командой.
    """
    statements: list[StatementTerm] = []
    labels_addr: dict[str, int] = dict()
    for term in source_terms:
        statement: StatementTerm = map_term_to_statement(term)
        if statement.label is not None:
            assert statement.label not in labels_addr, "Translation failed: Label '{}' is defined twice, line: {}".format(statement.label, term.line)
            labels_addr[statement.label] = len(statements)
        if statement.opcode is not None:
            statements.append(statement)
    assert len(statements) <= ROM_SIZE, "Translation failed: Program doesn't fit into ROM: {} instructions, max {}.".format(len(statements), ROM_SIZE)
    return statements, labels_addr


def resolve_argument(statement: StatementTerm, labels_addr: dict[str, int]) -> int:
    """ Подстановка значения аргумента: числа или адреса лейбла. """
    if statement.arg is None:
        return 0
    num_arg: int | None = try_convert_str_to_int(statement.arg)
    if num_arg is None:
        assert statement.opcode in Opcode.control_flow_operations(), "Translation failed: Only jump instructions accept labels, line: {}".format(statement.line)
        assert statement.arg in labels_addr, "Translation failed: Label '{}' is not defined, line: {}".format(statement.arg, statement.line)
        num_arg = labels_addr[statement.arg]
    assert 0 <= num_arg <= WORD_MASK, "Translation failed: Argument doesn't fit into 4 bits, line: {}".format(statement.line)
    return num_arg


def translate(code_text: str) -> tuple[Program, list[int | None]]:
    """ Трансляция текста исходной программы в машинный код для модели процессора.

    Возвращает программу и номера строк исходного кода для каждого слова.
    """
    source_terms: list[SourceTerm] = split_text_to_source_terms(code_text)
    statements, labels_addr = map_terms_to_statements(source_terms)

    words: list[int] = []
    for statement in statements:
        assert statement.opcode is not None
        words.append(encode(statement.opcode, resolve_argument(statement, labels_addr)))
    return Program(words), [statement.line for statement in statements]


def main(source_code_file_name: str, target_file_name: str) -> None:
    """ Функция запуска транслятора.

    Параметры:
    - Файл с исходным кодом программы.
    - Файл, в который в случае успеха трансляции будет записан машинный код.
    """
    with open(source_code_file_name, encoding="utf-8") as f:
        source = f.read()
        logging.info("Source file: {}".format(source_code_file_name))

    try:
        program, lines = translate(source)
    except AssertionError as e:
        logging.exception(e.args[0])
        return

    write_code(target_file_name, program, lines)
    logging.info("source LoC: {} code instr: {}".format(
        len(source.split("\n")),
        len(program))
    )


if __name__ == "__main__":
    logging.getLogger().addHandler(logging.StreamHandler(sys.stdout))
    logging.getLogger().setLevel(logging.DEBUG)

    logging.info("Translation started...")
    assert len(sys.argv) == 3, "Translation failed: Wrong arguments. Correct way is: translator.py <input_file> <target_file>"
    _, source, target = sys.argv
    main(source, target)
    logging.info("Translation ended.")
