import logging
from decimal import Decimal

from storefront.models.schemas import CategoryCreate, ProductCreate, UserCreate, VendorCreate

logger = logging.getLogger(__name__)

CATEGORIES = [
    ("Fruits", "Fresh seasonal fruits"),
    ("Vegetables", "Organic vegetables"),
    ("Dairy", "Fresh dairy products"),
    ("Bakery", "Artisanal baked goods"),
    ("Eggs", "Farm-fresh eggs"),
    ("Herbs", "Fresh culinary herbs"),
]

VENDORS = [
    {
        "user": dict(username="sarahjohnson", email="sarah@urbanberriesfarm.com",
                     first_name="Sarah", last_name="Johnson", phone_number="415-555-0101"),
        "business_name": "Urban Berries Farm",
        "description": "Growing organic berries in the heart of the city for over 7 years.",
        "address": "123 Farm St", "city": "San Francisco", "postal_code": "94103",
    },
    {
        "user": dict(username="miguelrodriguez", email="miguel@cityrooftop.com",
                     first_name="Miguel", last_name="Rodriguez", phone_number="415-555-0102"),
        "business_name": "City Rooftop Vegetables",
        "description": "Pioneering urban farming on repurposed rooftops.",
        "address": "456 Roof Ave", "city": "San Francisco", "postal_code": "94102",
    },
    {
        "user": dict(username="emmachen", email="emma@citybakery.com",
                     first_name="Emma", last_name="Chen", phone_number="415-555-0103"),
        "business_name": "City Bakery Co-op",
        "description": "Our collective of urban bakers uses traditional methods.",
        "address": "789 Bakery Blvd", "city": "San Francisco", "postal_code": "94104",
    },
]

# (name, description, price, category name, vendor index, organic, stock, image)
PRODUCTS = [
    ("Organic Strawberries", "Fresh picked, pesticide-free berries", "4.99", "Fruits", 0, True, 25,
     "https://images.unsplash.com/photo-1597362925123-77861d3fbac7"),
    ("Sourdough Bread", "Traditional 24-hour fermented loaf", "6.50", "Bakery", 2, False, 15,
     "https://images.unsplash.com/photo-1573246123716-6b1782bfc499"),
    ("Farm Fresh Eggs", "Pasture-raised, multicolored eggs", "5.25", "Eggs", 1, True, 30,
     "https://images.unsplash.com/photo-1550583724-b2692b85b150"),
    ("Goat Cheese", "Creamy chèvre with herbs", "7.99", "Dairy", 1, False, 20,
     "https://images.unsplash.com/photo-1601197764250-eb5910c0f903"),
]

SEED_PASSWORD = "password123"


def seed_storage(storage) -> bool:
    """Load the demo catalogue through the public interface. Skips a non-empty store."""
    if storage.get_categories():
        logger.info("Seed skipped: store already has categories")
        return False

    categories = {
        name: storage.create_category(CategoryCreate(name=name, description=description))
        for name, description in CATEGORIES
    }

    vendors = []
    for entry in VENDORS:
        entry = dict(entry)
        user = storage.create_user(UserCreate(password=SEED_PASSWORD, role="vendor", is_verified=True, **entry.pop("user")))
        vendors.append(storage.create_vendor(VendorCreate(user_id=user.id, **entry)))

    for name, description, price, category, vendor_index, organic, stock, image in PRODUCTS:
        storage.create_product(ProductCreate(
            name=name,
            description=description,
            price=Decimal(price),
            stock=stock,
            image_url=image,
            category_id=categories[category].id,
            vendor_id=vendors[vendor_index].id,
            is_organic=organic,
            is_featured=True,
        ))

    logger.info(f"Seeded {len(categories)} categories, {len(vendors)} vendors, {len(PRODUCTS)} products")
    return True
