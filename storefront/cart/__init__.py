# storefront/cart/__init__.py
