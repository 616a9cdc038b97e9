"""
Tests for recipe costs and menu profitability.
"""

from decimal import Decimal

from sandwich_pos.utils.cost_calculations import (
    calculate_menu_item_cost, calculate_profit_margin, get_menu_profitability
)


class TestMenuItemCost:

    def test_sums_recipe_costs(self, sandwich_menu):
        # 2 bread x 2.00 + 1 ham x 5.00
        assert calculate_menu_item_cost(sandwich_menu, 'menu_ham') == Decimal('9.00')

    def test_item_without_recipe_costs_nothing(self, sandwich_menu):
        assert calculate_menu_item_cost(sandwich_menu, 'menu_water') == Decimal('0.00')

    def test_missing_ingredient_is_skipped(self, sandwich_menu):
        sandwich_menu.create('recipes', {
            'menu_item_id': 'menu_ham', 'ingredient_id': 'ing_gone', 'quantity': 3
        })
        assert calculate_menu_item_cost(sandwich_menu, 'menu_ham') == Decimal('9.00')


class TestProfitMargin:

    def test_margin_percentage(self):
        assert calculate_profit_margin(45, 9) == Decimal('80.00')

    def test_zero_price(self):
        assert calculate_profit_margin(0, 5) == Decimal('0.00')


class TestMenuProfitability:

    def test_recipe_cost_used_when_linked(self, sandwich_menu):
        rows = get_menu_profitability(sandwich_menu)
        assert rows[0]['cost'] == 9.0
        assert rows[0]['profit'] == 36.0
        assert rows[0]['profit_margin'] == 80.0
        assert rows[0]['low_margin'] is False

    def test_stored_cost_without_recipes(self, data_access):
        data_access.create('menu_items', {'id': 'm1', 'name': 'Juice', 'price': 20, 'cost': 16})
        rows = get_menu_profitability(data_access, margin_warning=30)
        assert rows[0]['cost'] == 16.0
        assert rows[0]['profit_margin'] == 20.0
        assert rows[0]['low_margin'] is True

    def test_sorted_by_margin(self, sandwich_menu):
        sandwich_menu.create('menu_items', {'id': 'm_juice', 'name': 'Juice', 'price': 20, 'cost': 16})
        rows = get_menu_profitability(sandwich_menu)
        assert [r['id'] for r in rows] == ['m_juice', 'menu_ham']

    def test_sales_counted(self, sandwich_menu):
        sandwich_menu.create('sale_items', {'menu_item_id': 'menu_ham', 'quantity': 2, 'subtotal': 90})
        rows = get_menu_profitability(sandwich_menu)
        assert rows[0]['times_sold'] == 1
        assert rows[0]['total_revenue'] == 90.0
