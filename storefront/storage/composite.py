import logging

from storefront.storage.base import Storage

logger = logging.getLogger(__name__)


class CompositeStorage(Storage):
    """
    Reviews go to ``reviews``; every other operation goes to ``primary``.

    Each route is spelled out so the split is visible in one place.
    """

    def __init__(self, primary: Storage, reviews):
        super().__init__(primary.status_policy)
        self.primary = primary
        self.reviews = reviews

    def initialize(self) -> bool:
        primary_ok = self.primary.initialize()
        reviews_ok = self.reviews.initialize()
        if not (primary_ok and reviews_ok):
            logger.error(f"Composite storage degraded: primary={primary_ok} reviews={reviews_ok}")
        return primary_ok and reviews_ok

    def close(self):
        self.reviews.close()
        self.primary.close()

    # --- Users ---

    def get_user(self, user_id):
        return self.primary.get_user(user_id)

    def get_user_by_username(self, username):
        return self.primary.get_user_by_username(username)

    def get_user_by_email(self, email):
        return self.primary.get_user_by_email(email)

    def get_user_by_verification_token(self, token):
        return self.primary.get_user_by_verification_token(token)

    def get_user_by_reset_token(self, token):
        return self.primary.get_user_by_reset_token(token)

    def create_user(self, user):
        return self.primary.create_user(user)

    def update_user(self, user_id, update):
        return self.primary.update_user(user_id, update)

    def verify_user(self, user_id):
        return self.primary.verify_user(user_id)

    def delete_user(self, user_id):
        return self.primary.delete_user(user_id)

    def authenticate_user(self, username, password):
        return self.primary.authenticate_user(username, password)

    # --- Categories ---

    def get_categories(self):
        return self.primary.get_categories()

    def get_category(self, category_id):
        return self.primary.get_category(category_id)

    def create_category(self, category):
        return self.primary.create_category(category)

    def update_category(self, category_id, update):
        return self.primary.update_category(category_id, update)

    def delete_category(self, category_id):
        return self.primary.delete_category(category_id)

    # --- Products ---

    def get_products(self):
        return self.primary.get_products()

    def get_featured_products(self):
        return self.primary.get_featured_products()

    def get_product(self, product_id):
        return self.primary.get_product(product_id)

    def get_products_by_category(self, category_id):
        return self.primary.get_products_by_category(category_id)

    def get_products_by_vendor(self, vendor_id):
        return self.primary.get_products_by_vendor(vendor_id)

    def search_products(self, query):
        return self.primary.search_products(query)

    def create_product(self, product):
        return self.primary.create_product(product)

    def update_product(self, product_id, update):
        return self.primary.update_product(product_id, update)

    def adjust_product_stock(self, product_id, delta):
        return self.primary.adjust_product_stock(product_id, delta)

    def delete_product(self, product_id):
        return self.primary.delete_product(product_id)

    # --- Vendors ---

    def get_vendors(self):
        return self.primary.get_vendors()

    def get_vendor(self, vendor_id):
        return self.primary.get_vendor(vendor_id)

    def get_vendor_by_user_id(self, user_id):
        return self.primary.get_vendor_by_user_id(user_id)

    def create_vendor(self, vendor):
        return self.primary.create_vendor(vendor)

    def update_vendor(self, vendor_id, update):
        return self.primary.update_vendor(vendor_id, update)

    def delete_vendor(self, vendor_id):
        return self.primary.delete_vendor(vendor_id)

    # --- Orders ---

    def get_orders(self):
        return self.primary.get_orders()

    def get_order(self, order_id):
        return self.primary.get_order(order_id)

    def get_orders_by_user(self, user_id):
        return self.primary.get_orders_by_user(user_id)

    def create_order(self, order):
        return self.primary.create_order(order)

    def update_order_status(self, order_id, status):
        return self.primary.update_order_status(order_id, status)

    def update_payment_status(self, order_id, payment_status):
        return self.primary.update_payment_status(order_id, payment_status)

    def delete_order(self, order_id):
        return self.primary.delete_order(order_id)

    def place_order(self, order, items, decrement_stock=True):
        return self.primary.place_order(order, items, decrement_stock)

    # --- Order items ---

    def get_order_items(self, order_id):
        return self.primary.get_order_items(order_id)

    def create_order_item(self, item):
        return self.primary.create_order_item(item)

    # --- Reviews ---

    def get_reviews(self, product_id):
        return self.reviews.get_reviews(product_id)

    def get_reviews_by_user(self, user_id):
        return self.reviews.get_reviews_by_user(user_id)

    def get_review(self, review_id):
        return self.reviews.get_review(review_id)

    def create_review(self, review):
        return self.reviews.create_review(review)

    def update_review(self, review_id, update):
        return self.reviews.update_review(review_id, update)

    def delete_review(self, review_id):
        return self.reviews.delete_review(review_id)
