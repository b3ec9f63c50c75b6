from decimal import Decimal

DEMO_COMPANIES = [
    {
        "name": "Awesome Restaurants Inc",
        "email": "contact@awesome-restaurants.example",
        "branches": [
            {
                "name": "Downtown Branch",
                "address": "123 Main St",
                "tables": ["T1", "T2", "T3", "T4"],
                "menu": {
                    "Beverages": [
                        {"name": "Coffee", "sku": "DT-BEV-001", "price": Decimal("2.50")},
                        {"name": "Iced Tea", "sku": "DT-BEV-002", "price": Decimal("2.00")},
                    ],
                    "Appetizers": [
                        {"name": "Spring Rolls", "sku": "DT-APP-001", "price": Decimal("5.00")},
                    ],
                },
            },
            {
                "name": "Uptown Branch",
                "address": "456 Elm St",
                "tables": ["A1", "A2"],
                "menu": {
                    "Beverages": [
                        {"name": "Coffee", "sku": "UT-BEV-001", "price": Decimal("2.75")},
                    ],
                },
            },
        ],
    },
]
