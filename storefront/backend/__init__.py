# storefront/backend/__init__.py
