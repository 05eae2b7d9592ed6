from __future__ import annotations

import threading

from isa import WORD_MASK

CLOCK_PERIOD: float = 0.5
""" Период тактового генератора по умолчанию, в секундах."""


class Port:
    """ Порт ввода/вывода машины: 4-битные защёлки ввода и вывода.

    Защёлка ввода заполняется внешним окружением (расписанием ввода) перед тем, как её прочитает
    инструкция IN. Защёлка вывода заполняется только инструкциями OUT.

    Сигналы реализованы переменными, т.к. в рамках устройства сохраняют состояние до смены состояния
    """

    _in_latch: int
    _out_latch: int

    _new_data: bool
    """ Флаг записи в защёлку вывода, ещё не забранной окружением."""

    def __init__(self) -> None:
        self._in_latch = 0
        self._out_latch = 0
        self._new_data = False

    def __repr__(self) -> str:
        return "IN: {:04b} | OUT: {:04b}".format(self._in_latch, self._out_latch)

    @property
    def input(self) -> int:
        return self._in_latch

    @property
    def output(self) -> int:
        return self._out_latch

    def signal_input(self, value: int) -> None:
        """ Запись значения в защёлку ввода со стороны окружения."""
        self._in_latch = value & WORD_MASK

    def signal_write_data(self, value: int) -> None:
        """ Запись значения в защёлку вывода со стороны машины."""
        self._out_latch = value & WORD_MASK
        self._new_data = True

    def take_new_data(self) -> int | None:
        """ Забрать новое значение защёлки вывода, если оно появилось после прошлого вызова."""
        if not self._new_data:
            return None
        self._new_data = False
        return self._out_latch


class Clock:
    """ Тактовый генератор.

    Ожидание очередного такта прерывается сигналом отмены, поэтому отмена вступает в силу
    не позднее чем через один период.
    """

    _period: float

    def __init__(self, period: float = CLOCK_PERIOD) -> None:
        assert period >= 0, "Clock period can not be negative."
        self._period = period

    def wait_tick(self, cancel: threading.Event) -> bool:
        """ Ожидание следующего такта или сигнала отмены, смотря что наступит раньше.

        Возвращает True, если наступил такт, и False, если поступил сигнал отмены.
        """
        return not cancel.wait(self._period)
