"""Click parameter types."""

import click

from treasury.utils.amount_parser import parse_amount


class AmountParamType(click.ParamType):
    """Money amount accepting bank-style input such as '1.234,56' or '-50'."""

    name = "amount"

    def convert(self, value, param, ctx):
        try:
            return parse_amount(str(value))
        except ValueError as e:
            self.fail(str(e), param, ctx)


AMOUNT = AmountParamType()
