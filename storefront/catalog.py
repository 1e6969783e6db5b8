from storefront.models import Product


def get_active_products(db, ids):
    if not ids:
        return []
    return db.query(Product).filter(Product.id.in_(list(ids)), Product.active.is_(True)).all()


def get_products_by_ids(db, ids):
    if not ids:
        return []
    return db.query(Product).filter(Product.id.in_(list(ids))).all()


def list_active_products(db):
    return db.query(Product).filter(Product.active.is_(True)).order_by(Product.created_at.desc()).all()


def get_product_by_slug(db, slug: str):
    return db.query(Product).filter_by(slug=slug, active=True).first()


def product_to_dict(product: Product) -> dict:
    return {
        "id": product.id,
        "slug": product.slug,
        "name": product.name,
        "description": product.description,
        "imageUrl": product.image_url,
        "currency": product.currency,
        "unitAmount": product.unit_amount,
        "active": product.active,
    }
