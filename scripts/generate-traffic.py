#!/usr/bin/env python3
"""
Traffic generator for the storefront service
Simulates shoppers browsing the catalog, filling carts, and checking out
"""

import random
import time
import threading
from datetime import datetime

import httpx

API_URL = "http://localhost:8000"
CUSTOMER_TOKENS = ["user-token-123", "test-token-789"]

# Weight for actions
ACTION_WEIGHTS = {
    "browse": 0.4,
    "add_to_cart": 0.3,
    "update_cart": 0.05,
    "checkout": 0.15,
    "view_cart": 0.05,
    "view_orders": 0.05,
}


def log(message):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] {message}")


class Shopper:
    def __init__(self, shopper_id, token=None):
        self.shopper_id = shopper_id
        self.products = []
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(base_url=API_URL, headers=headers, timeout=10)

    def close(self):
        self.client.close()

    def fetch_products(self):
        try:
            response = self.client.get("/products", params={"pageSize": 100})
            if response.status_code == 200:
                self.products = response.json()["data"]
                log(f"Shopper {self.shopper_id}: Fetched {len(self.products)} products")
                return True
        except httpx.HTTPError as e:
            log(f"Shopper {self.shopper_id}: Failed to fetch products - {e}")
        return False

    def browse_products(self):
        if not self.products:
            self.fetch_products()

        if self.products:
            product = random.choice(self.products)
            try:
                response = self.client.get(f"/products/{product['id']}")
                if response.status_code == 200:
                    log(f"Shopper {self.shopper_id}: Browsing {product['name']}")
                    return True
            except httpx.HTTPError as e:
                log(f"Shopper {self.shopper_id}: Failed to browse product - {e}")
        return False

    def add_to_cart(self):
        if not self.products:
            self.fetch_products()

        if self.products:
            product = random.choice(self.products)
            try:
                response = self.client.post(
                    "/cart",
                    json={"productId": product["id"], "quantity": random.randint(1, 3)}
                )
                if response.status_code == 201:
                    log(f"Shopper {self.shopper_id}: Added {product['name']} to cart")
                    return True
                log(f"Shopper {self.shopper_id}: Failed to add to cart - {response.json().get('kind')}")
            except httpx.HTTPError as e:
                log(f"Shopper {self.shopper_id}: Failed to add to cart - {e}")
        return False

    def update_cart(self):
        try:
            items = self.client.get("/cart").json().get("items", [])
            if not items:
                return False
            line = random.choice(items)
            if random.random() < 0.3:
                response = self.client.delete(f"/cart/{line['id']}")
                log(f"Shopper {self.shopper_id}: Removed {line['product']['name']} - {response.status_code}")
            else:
                response = self.client.patch(f"/cart/{line['id']}", json={"quantity": random.randint(1, 4)})
                log(f"Shopper {self.shopper_id}: Changed {line['product']['name']} quantity - {response.status_code}")
            return response.is_success
        except httpx.HTTPError as e:
            log(f"Shopper {self.shopper_id}: Failed to update cart - {e}")
        return False

    def view_cart(self):
        try:
            response = self.client.get("/cart")
            if response.status_code == 200:
                cart = response.json()
                log(f"Shopper {self.shopper_id}: Viewing cart with {cart['itemCount']} items, total {cart['total']}")
                return True
        except httpx.HTTPError as e:
            log(f"Shopper {self.shopper_id}: Failed to view cart - {e}")
        return False

    def checkout(self):
        try:
            response = self.client.post("/orders")
            if response.status_code == 201:
                order = response.json()
                log(f"Shopper {self.shopper_id}: Checkout successful - Order {order['id']} ({order['total']})")
                return True
            log(f"Shopper {self.shopper_id}: Checkout failed - {response.json().get('kind')}")
        except httpx.HTTPError as e:
            log(f"Shopper {self.shopper_id}: Checkout failed - {e}")
        return False

    def view_orders(self):
        try:
            response = self.client.get("/orders")
            if response.status_code == 200:
                meta = response.json()["meta"]
                log(f"Shopper {self.shopper_id}: Viewing {meta['totalItems']} orders")
                return True
        except httpx.HTTPError as e:
            log(f"Shopper {self.shopper_id}: Failed to view orders - {e}")
        return False

    def random_action(self):
        action = random.choices(
            list(ACTION_WEIGHTS.keys()),
            weights=list(ACTION_WEIGHTS.values())
        )[0]
        return getattr(self, {
            "browse": "browse_products",
            "add_to_cart": "add_to_cart",
            "update_cart": "update_cart",
            "checkout": "checkout",
            "view_cart": "view_cart",
            "view_orders": "view_orders",
        }[action])()


def shopper_session(shopper_id, duration_seconds, shopper_type="browser"):
    """
    Simulate a shopper session

    shopper_type:
    - "browser": Just browses products, anonymously (50%)
    - "cart_abandoner": Adds to cart but doesn't checkout (30%)
    - "buyer": Completes purchases (20%)
    """
    token = None if shopper_type == "browser" else random.choice(CUSTOMER_TOKENS)
    shopper = Shopper(shopper_id, token)
    end_time = time.time() + duration_seconds

    try:
        # Everyone browses first
        shopper.fetch_products()
        for _ in range(random.randint(2, 5)):
            shopper.browse_products()
            time.sleep(random.uniform(0.5, 1.5))

        if shopper_type == "browser":
            while time.time() < end_time:
                shopper.browse_products()
                time.sleep(random.uniform(0.3, 0.8))
            return

        for _ in range(random.randint(1, 3)):
            shopper.add_to_cart()
            time.sleep(random.uniform(0.3, 0.8))

        if shopper_type == "cart_abandoner":
            while time.time() < end_time:
                random.choice([shopper.browse_products, shopper.view_cart, shopper.update_cart])()
                time.sleep(random.uniform(0.3, 0.8))
            return

        while time.time() < end_time:
            shopper.random_action()
            time.sleep(random.uniform(0.5, 1.5))
    finally:
        shopper.close()


def generate_traffic(num_concurrent_users=5, session_duration=60):
    """Generate traffic with multiple concurrent shoppers"""
    log(f"Starting traffic generation with {num_concurrent_users} concurrent shoppers")
    log(f"Session duration: {session_duration} seconds")
    log("Shopper mix: 50% browsers, 30% cart abandoners, 20% buyers")

    threads = []

    try:
        while True:
            while len([t for t in threads if t.is_alive()]) < num_concurrent_users:
                shopper_id = f"shopper_{random.randint(1000, 9999)}"

                rand = random.random()
                if rand < 0.50:
                    shopper_type = "browser"
                elif rand < 0.80:
                    shopper_type = "cart_abandoner"
                else:
                    shopper_type = "buyer"

                thread = threading.Thread(
                    target=shopper_session,
                    args=(shopper_id, session_duration, shopper_type)
                )
                thread.start()
                threads.append(thread)

                time.sleep(random.uniform(1, 3))

            threads = [t for t in threads if t.is_alive()]
            time.sleep(5)

    except KeyboardInterrupt:
        log("\nStopping traffic generation...")
        log("Waiting for active sessions to complete...")
        for thread in threads:
            thread.join(timeout=10)
        log("Traffic generation stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate traffic for the storefront service")
    parser.add_argument(
        "--users",
        type=int,
        default=5,
        help="Number of concurrent shoppers (default: 5)"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Session duration in seconds (default: 60)"
    )
    parser.add_argument(
        "--url",
        type=str,
        default="http://localhost:8000",
        help="API URL (default: http://localhost:8000)"
    )

    args = parser.parse_args()
    API_URL = args.url

    log("=" * 60)
    log("Storefront Traffic Generator")
    log("=" * 60)
    log(f"API URL: {API_URL}")
    log(f"Concurrent Shoppers: {args.users}")
    log(f"Session Duration: {args.duration}s")
    log("=" * 60)

    generate_traffic(args.users, args.duration)
