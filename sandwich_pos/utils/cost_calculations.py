"""
Cost Calculation Utilities

Recipe-based menu item costs and menu profitability, computed from the
records returned by the data access facade.
"""

from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')


def _money(value):
    return Decimal(str(value or 0)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_menu_item_cost(data_access, menu_item_id):
    """
    Calculate the ingredient cost of one menu item.

    Args:
        data_access: DataAccess facade
        menu_item_id: Menu item id

    Returns:
        Decimal: Sum of recipe quantity x ingredient cost_per_unit; recipe
        links to missing ingredients contribute nothing
    """
    recipes = data_access.read('recipes', {'where': {'menu_item_id': menu_item_id}})
    if not recipes:
        return _money(0)

    ingredients = {ingredient['id']: ingredient for ingredient in data_access.read('ingredients')}

    total = Decimal('0')
    for recipe in recipes:
        ingredient = ingredients.get(recipe.get('ingredient_id'))
        if ingredient is None:
            continue
        total += Decimal(str(recipe.get('quantity') or 0)) * Decimal(str(ingredient.get('cost_per_unit') or 0))
    return _money(total)


def calculate_profit_margin(price, cost):
    """
    Profit margin as a percentage of price.

    Returns:
        Decimal: Margin rounded to two places, 0 for a zero price
    """
    price = Decimal(str(price or 0))
    if price == 0:
        return _money(0)
    return _money((price - Decimal(str(cost or 0))) / price * 100)


def get_menu_profitability(data_access, margin_warning=30):
    """
    Profitability of every menu item.

    The cost is the recipe cost when the item has recipe links, otherwise the
    cost stored on the menu item.

    Args:
        data_access: DataAccess facade
        margin_warning: Margin percentage under which an item is flagged

    Returns:
        list: One dict per menu item, lowest margin first
    """
    sold = defaultdict(lambda: {'times_sold': 0, 'total_revenue': Decimal('0')})
    for sale_item in data_access.read('sale_items'):
        entry = sold[sale_item.get('menu_item_id')]
        entry['times_sold'] += 1
        entry['total_revenue'] += Decimal(str(sale_item.get('subtotal') or 0))

    linked_items = {recipe.get('menu_item_id') for recipe in data_access.read('recipes')}

    rows = []
    for menu_item in data_access.get_menu_items():
        if menu_item['id'] in linked_items:
            cost = calculate_menu_item_cost(data_access, menu_item['id'])
        else:
            cost = _money(menu_item.get('cost'))
        price = _money(menu_item.get('price'))
        margin = calculate_profit_margin(price, cost)

        rows.append({
            'id': menu_item['id'],
            'name': menu_item.get('name'),
            'price': float(price),
            'cost': float(cost),
            'profit': float(price - cost),
            'profit_margin': float(margin),
            'low_margin': margin < Decimal(str(margin_warning)),
            'times_sold': sold[menu_item['id']]['times_sold'],
            'total_revenue': float(_money(sold[menu_item['id']]['total_revenue'])),
        })

    rows.sort(key=lambda row: row['profit_margin'])
    return rows
