"""
Default Data
First-run menu, ingredients, recipes and settings for the local backend
"""

DEFAULT_CATEGORIES = [
    {'id': 'cat_sandwich', 'name': 'Sandwiches', 'description': 'Main sandwich menu',
     'color': '#0c8ce9', 'icon': 'sandwich', 'display_order': 1, 'is_active': True},
    {'id': 'cat_beverage', 'name': 'Beverages', 'description': 'Drinks and juices',
     'color': '#22c55e', 'icon': 'cup', 'display_order': 2, 'is_active': True},
    {'id': 'cat_side', 'name': 'Sides', 'description': 'Sides and snacks',
     'color': '#f59e0b', 'icon': 'fries', 'display_order': 3, 'is_active': True},
    {'id': 'cat_dessert', 'name': 'Desserts', 'description': 'Desserts and sweets',
     'color': '#ec4899', 'icon': 'cake', 'display_order': 4, 'is_active': True},
]

# (id, name, unit, cost_per_unit, quantity, minimum_stock, supplier, category)
_INGREDIENT_ROWS = [
    ('ing_bread_white', 'White bread', 'slice', 2.00, 100, 10, 'Neighbourhood bakery', 'Bread'),
    ('ing_ham', 'Ham', 'slice', 5.00, 50, 5, 'Meat supplier', 'Meat'),
    ('ing_cheese', 'Cheese', 'slice', 3.00, 40, 8, 'Dairy company', 'Dairy'),
    ('ing_lettuce', 'Lettuce', 'leaf', 1.00, 30, 5, 'Fresh farm', 'Vegetables'),
    ('ing_tomato', 'Tomato', 'slice', 1.50, 25, 5, 'Fresh farm', 'Vegetables'),
    ('ing_bread_whole_wheat', 'Whole wheat bread', 'slice', 2.50, 50, 10, 'Neighbourhood bakery', 'Bread'),
    ('ing_chicken', 'Grilled chicken', 'slice', 8.00, 30, 5, 'Meat supplier', 'Meat'),
    ('ing_tuna', 'Tuna', 'tbsp', 6.00, 20, 3, 'Seafood supplier', 'Meat'),
    ('ing_egg', 'Fried egg', 'egg', 4.00, 40, 10, 'Egg farm', 'Meat'),
    ('ing_cucumber', 'Cucumber', 'slice', 0.50, 50, 10, 'Fresh farm', 'Vegetables'),
    ('ing_onion', 'Onion', 'slice', 0.75, 40, 8, 'Fresh farm', 'Vegetables'),
    ('ing_mayo', 'Mayonnaise', 'tsp', 0.25, 100, 20, 'Retail store', 'Condiments'),
    ('ing_mustard', 'Mustard', 'tsp', 0.30, 80, 15, 'Retail store', 'Condiments'),
    ('ing_butter', 'Butter', 'tsp', 0.50, 60, 12, 'Dairy company', 'Dairy'),
]

DEFAULT_INGREDIENTS = [
    {'id': row[0], 'name': row[1], 'unit': row[2], 'cost_per_unit': row[3],
     'quantity': row[4], 'minimum_stock': row[5], 'supplier': row[6], 'category': row[7]}
    for row in _INGREDIENT_ROWS
]

DEFAULT_MENU_ITEMS = [
    {'id': 'menu_ham_cheese', 'name': 'Ham & Cheese', 'price': 45.00, 'cost': 12.00,
     'category': 'cat_sandwich', 'description': 'Classic ham and cheese sandwich',
     'is_available': True, 'is_featured': True, 'prep_time': 5},
    {'id': 'menu_grilled_cheese', 'name': 'Grilled Cheese', 'price': 35.00, 'cost': 8.00,
     'category': 'cat_sandwich', 'description': 'Toasted cheese sandwich',
     'is_available': True, 'is_featured': False, 'prep_time': 7},
]

# (menu item, ingredient, quantity per sandwich)
_RECIPE_ROWS = [
    ('menu_ham_cheese', 'ing_bread_white', 2),
    ('menu_ham_cheese', 'ing_ham', 2),
    ('menu_ham_cheese', 'ing_cheese', 1),
    ('menu_ham_cheese', 'ing_lettuce', 2),
    ('menu_ham_cheese', 'ing_tomato', 2),
    ('menu_ham_cheese', 'ing_mayo', 1),
    ('menu_grilled_cheese', 'ing_bread_white', 2),
    ('menu_grilled_cheese', 'ing_cheese', 2),
    ('menu_grilled_cheese', 'ing_butter', 2),
]

DEFAULT_RECIPES = [
    {'id': f"recipe_{menu_item_id[5:]}_{ingredient_id[4:]}",
     'menu_item_id': menu_item_id, 'ingredient_id': ingredient_id, 'quantity': quantity}
    for menu_item_id, ingredient_id, quantity in _RECIPE_ROWS
]


def default_settings(app_config):
    """Settings records derived from the app configuration"""
    return [
        {'id': 'business_name', 'key': 'business_name', 'value': app_config.get('BUSINESS_NAME')},
        {'id': 'tax_rate', 'key': 'tax_rate', 'value': app_config.get('TAX_RATE')},
        {'id': 'currency', 'key': 'currency', 'value': app_config.get('CURRENCY')},
        {'id': 'timezone', 'key': 'timezone', 'value': 'Asia/Bangkok'},
    ]


def default_data(app_config):
    """
    All seed records in insertion order

    Returns:
        list: (table, records) pairs
    """
    return [
        ('menu_categories', DEFAULT_CATEGORIES),
        ('ingredients', DEFAULT_INGREDIENTS),
        ('menu_items', DEFAULT_MENU_ITEMS),
        ('recipes', DEFAULT_RECIPES),
        ('settings', default_settings(app_config)),
    ]
