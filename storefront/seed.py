"""Reset the catalog to three sample products: ``python -m storefront.seed``."""

import logging

from storefront.database import Base, SessionLocal, engine
from storefront.models import Order, OrderItem, Product

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "slug": "sample-product-1",
        "name": "Sample Product 1",
        "description": "A sample product for testing",
        "image_url": "https://via.placeholder.com/400x400",
        "currency": "usd",
        "unit_amount": 2999,
    },
    {
        "slug": "sample-product-2",
        "name": "Sample Product 2",
        "description": "Another sample product",
        "image_url": "https://via.placeholder.com/400x400",
        "currency": "usd",
        "unit_amount": 4999,
    },
    {
        "slug": "sample-product-3",
        "name": "Sample Product 3",
        "description": "Yet another sample product",
        "image_url": "https://via.placeholder.com/400x400",
        "currency": "usd",
        "unit_amount": 1999,
    },
]


def seed(db) -> int:
    db.query(OrderItem).delete()
    db.query(Order).delete()
    db.query(Product).delete()
    db.add_all(Product(active=True, **fields) for fields in SAMPLE_PRODUCTS)
    db.commit()
    return len(SAMPLE_PRODUCTS)


def main():
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        logger.info("Created %d products", seed(db))
    finally:
        db.close()


if __name__ == "__main__":
    main()
