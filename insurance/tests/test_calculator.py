from decimal import Decimal

import pytest

from insurance.exceptions import InvalidArgument
from insurance.services import calculator


def test_generalist_is_reimbursed_in_full():
    assert calculator.calculate(Decimal('100'), True) == Decimal('100.00')


def test_specialist_is_reimbursed_at_eighty_percent():
    assert calculator.calculate(Decimal('100'), False) == Decimal('80.00')
    assert calculator.calculate(Decimal('33.33'), False) == Decimal('26.66')


def test_rounding_is_half_up():
    assert calculator.calculate(Decimal('10.005'), True) == Decimal('10.01')
    # 1.05625 * 0.8 = 0.845
    assert calculator.calculate(Decimal('1.05625'), False) == Decimal('0.85')


def test_floats_go_through_str():
    assert calculator.calculate(0.1, True) == Decimal('0.10')
    assert calculator.calculate(19.99, False) == Decimal('15.99')


def test_zero_cost_is_allowed():
    assert calculator.calculate(Decimal('0'), False) == Decimal('0.00')


@pytest.mark.parametrize('cost', [None, Decimal('-0.01')])
def test_missing_or_negative_cost_is_rejected(cost):
    with pytest.raises(InvalidArgument):
        calculator.calculate(cost, True)


def test_custom_rate():
    assert calculator.calculate_with_rate(Decimal('100'), Decimal('0.5')) == Decimal('50.00')
    assert calculator.calculate_with_rate(Decimal('80'), 1) == Decimal('80.00')


@pytest.mark.parametrize('rate', [None, Decimal('-0.1'), Decimal('1.01')])
def test_custom_rate_out_of_range(rate):
    with pytest.raises(InvalidArgument):
        calculator.calculate_with_rate(Decimal('100'), rate)


def test_percentage():
    assert calculator.percentage(Decimal('80'), Decimal('100')) == Decimal('80.00')
    assert calculator.percentage(Decimal('1'), Decimal('3')) == Decimal('33.33')
    assert calculator.percentage(Decimal('2'), Decimal('3')) == Decimal('66.67')


def test_percentage_of_zero_or_missing_cost_is_zero():
    assert calculator.percentage(Decimal('10'), Decimal('0')) == Decimal('0.00')
    assert calculator.percentage(Decimal('10'), None) == Decimal('0.00')


def test_out_of_pocket_is_clamped():
    assert calculator.out_of_pocket(Decimal('100'), Decimal('80')) == Decimal('20.00')
    assert calculator.out_of_pocket(Decimal('80'), Decimal('100')) == Decimal('0.00')
    assert calculator.out_of_pocket(None, Decimal('1')) == Decimal('0.00')


def test_verify_uses_a_cent_tolerance():
    assert calculator.verify(Decimal('80.00'), Decimal('100'), False)
    assert calculator.verify(Decimal('80.009'), Decimal('100'), False)
    assert not calculator.verify(Decimal('80.01'), Decimal('100'), False)
    assert not calculator.verify(None, Decimal('100'), False)
    assert not calculator.verify(Decimal('80'), None, False)


def test_rate_table():
    assert calculator.rate_for(True) == Decimal('1.00')
    assert calculator.rate_for(False) == Decimal('0.80')


def test_specialist_savings():
    assert calculator.specialist_savings(Decimal('100')) == Decimal('20.00')
    assert calculator.specialist_savings(Decimal('-5')) == Decimal('0.00')
    assert calculator.specialist_savings(None) == Decimal('0.00')


def test_formatting():
    assert calculator.format_amount(Decimal('12.5')) == '12.50 €'
    assert calculator.format_percentage(Decimal('80')) == '80.00 %'
