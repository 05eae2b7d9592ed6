from __future__ import annotations

import json
from enum import IntEnum
from typing import Any, Iterable, Iterator

ROM_SIZE: int = 16
""" Максимальное количество слов в ПЗУ машины."""

WORD_MASK: int = 0x0F
""" Маска 4-битного слова (полубайта)."""


class RomSizeError(ValueError):
    """ Программа не помещается в ПЗУ машины."""

    def __init__(self) -> None:
        super().__init__("Rom size is over. Max size is {}.".format(ROM_SIZE))


class Opcode(IntEnum):
    """ Opcode инструкций машины (старший полубайт слова программы).

    Могут быть поделены на две группы:

    1. Операции управления потоком исполнения: "JMP", "JNC".

    2. Операции над данными: все остальные


    и на две категории:

    1. Исполняемые без аргумента: "MOV A,B", "MOV B,A", "IN A", "IN B", "OUT B".

    2. Исполняемые с непосредственным аргументом: все остальные.

    Значения 0b1000, 0b1010, 0b1100 и 0b1101 не заняты ни одной инструкцией.
    """

    ADD_A = 0b0000
    MOV_A_B = 0b0001
    IN_A = 0b0010
    MOV_A = 0b0011
    MOV_B_A = 0b0100
    ADD_B = 0b0101
    IN_B = 0b0110
    MOV_B = 0b0111
    OUT_B = 0b1001
    OUT_IM = 0b1011
    JNC = 0b1110
    JMP = 0b1111

    @staticmethod
    def lookup(value: int) -> Opcode | None:
        """ Поиск инструкции по значению старшего полубайта. None - инструкции нет."""
        try:
            return Opcode(value)
        except ValueError:
            return None

    @staticmethod
    def control_flow_operations() -> set[Opcode]:
        """ Множество команд, самостоятельно устанавливающих счётчик команд."""
        return {Opcode.JMP, Opcode.JNC}

    @staticmethod
    def no_operand_operations() -> set[Opcode]:
        """ Множество команд без аргумента

        Младший полубайт слова этих команд не используется и при декодировании считается нулём.
        """
        return {Opcode.MOV_A_B, Opcode.MOV_B_A, Opcode.IN_A, Opcode.IN_B, Opcode.OUT_B}

    def mnemonic(self) -> str:
        """ Мнемоника инструкции в формате таблицы команд, например `MOV A,im`."""
        return {
            Opcode.ADD_A: "ADD A,im",
            Opcode.MOV_A_B: "MOV A,B",
            Opcode.IN_A: "IN A",
            Opcode.MOV_A: "MOV A,im",
            Opcode.MOV_B_A: "MOV B,A",
            Opcode.ADD_B: "ADD B,im",
            Opcode.IN_B: "IN B",
            Opcode.MOV_B: "MOV B,im",
            Opcode.OUT_B: "OUT B",
            Opcode.OUT_IM: "OUT im",
            Opcode.JNC: "JNC im",
            Opcode.JMP: "JMP im",
        }[self]

    def __str__(self) -> str:
        """Переопределение стандартного поведения `__str__` для `Enum`: вместо
        `Opcode.MOV_A` вернуть `MOV A,im`.
        """
        return self.mnemonic()

    def __repr__(self) -> str:
        return self.__str__()


def decode(word: int) -> tuple[int, int]:
    """ Декодирование слова программы в пару (opcode, аргумент).

    Ошибок не бывает: любое слово декодируется в какую-то пару. Отсутствие инструкции
    с полученным opcode обнаруживается при исполнении.
    """
    opcode: int = (word >> 4) & WORD_MASK
    operand: int = word & WORD_MASK
    if opcode in Opcode.no_operand_operations():
        operand = 0
    return opcode, operand


def encode(opcode: Opcode, operand: int = 0) -> int:
    assert 0 <= operand <= WORD_MASK, "Operand {} doesn't fit into 4 bits".format(operand)
    return (int(opcode) << 4) | operand


def disassemble(word: int) -> str:
    """ Текстовое представление слова программы: `MOV A, 1`, `OUT B`, `??? 1000`."""
    opcode, operand = decode(word)
    instruction: Opcode | None = Opcode.lookup(opcode)
    if instruction is None:
        return "??? {:04b}".format(opcode)
    text: str = instruction.mnemonic().replace(",", ", ")
    if instruction in Opcode.no_operand_operations():
        return text
    return text.replace("im", str(operand))


class Program:
    """ Содержимое ПЗУ: неизменяемая последовательность из не более чем 16 байт.

    Программа только читается машиной, поэтому её можно свободно передавать для просмотра.
    """

    _words: tuple[int, ...]

    def __init__(self, words: Iterable[int] = ()) -> None:
        self._words = tuple(words)
        if len(self._words) > ROM_SIZE:
            raise RomSizeError()
        for index, word in enumerate(self._words):
            if isinstance(word, bool) or not isinstance(word, int) or not 0 <= word <= 0xFF:
                raise ValueError("Rom word at {} is not a byte: {!r}".format(index, word))

    def __len__(self) -> int:
        return len(self._words)

    def __getitem__(self, index: int) -> int:
        return self._words[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self._words)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Program):
            return self._words == other._words
        return False

    def __hash__(self) -> int:
        return hash(self._words)

    def __str__(self) -> str:
        return "[" + ", ".join("{:08b}".format(word) for word in self._words) + "]"

    def __repr__(self) -> str:
        return "Program({})".format(self.__str__())


def code_to_json(program: Program, lines: list[int | None] | None = None) -> str:
    """ Строковое представление машинного кода.

    Каждое слово сопровождается мнемоникой и (при наличии) номером строки исходного кода.
    """
    if lines is None:
        lines = [None] * len(program)
    assert len(lines) == len(program), "Source line references don't match program length"
    contents: list[dict[str, Any]] = [
        {
            "index": index,
            "word": word,
            "mnemonic": disassemble(word),
            "line": line,
        }
        for index, (word, line) in enumerate(zip(program, lines))
    ]
    return json.dumps(contents, indent=4)


def read_code(filename: str) -> Program:
    """ Чтение машинного кода из файла.

    Элементы списка - объекты с полем `word` или сами слова.
    """
    with open(filename, encoding="utf-8") as file:
        code_text: list[Any] = json.loads(file.read())

    if not isinstance(code_text, list):
        raise ValueError("Machine code should be a list of words")

    words: list[int] = []
    for elem in code_text:
        if isinstance(elem, dict):
            try:
                words.append(elem["word"])
            except KeyError as e:
                raise ValueError("Machine word without 'word' field: {}".format(elem)) from e
        else:
            words.append(elem)

    return Program(words)


def write_code(filename: str, program: Program, lines: list[int | None] | None = None) -> None:
    """Записать машинный код в файл. """
    with open(filename, "w", encoding="utf-8") as file:
        file.write(code_to_json(program, lines))
