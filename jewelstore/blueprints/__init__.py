"""HTTP blueprints: auth, catalog (categories/metals/gemstones), products, prices."""
