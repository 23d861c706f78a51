# Overview: Flask blueprints, one per storefront resource.
