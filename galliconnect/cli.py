import click
from werkzeug.security import generate_password_hash

from .domain import Product, Shop, ShopType, User, UserRole
from .extensions import db
from .retailer.services import product_image
from .store import get_store

DEMO_PRODUCTS = (
    ('Basmati Rice', 120.0, '1 kg'),
    ('Toor Dal', 95.0, '500 g'),
    ('Fresh Milk', 30.0, '500 ml'),
    ('Brown Bread', 45.0, '400 g'),
)


def register_cli(app):
    @app.cli.command('store-info')
    def store_info():
        """Print which persistence gateway is active."""
        store = get_store()
        click.echo(f'Persistence mode: {store.mode}')
        click.echo(f'Live order updates: {"on" if store.supports_realtime else "off"}')

    @app.cli.command('init-db')
    def init_db():
        store = get_store()
        if store.mode != 'hosted':
            click.echo('DATABASE_URL is not set; the local store needs no setup.')
            return
        db.create_all()
        store.prepare()
        click.echo('Hosted tables created.')

    @app.cli.command('seed-demo')
    @click.option('--password', default='demo123', show_default=True)
    def seed_demo(password):
        """Create a demo retailer with an open shop, a few products and a verified customer."""
        store = get_store()
        existing = {(user.email, user.role) for user in store.get_users()}
        password_hash = generate_password_hash(password)

        retailer = User(
            id='demo-retailer',
            email='retailer@demo.local',
            name='Demo',
            role=UserRole.RETAILER,
            contact='9000000001',
            address='12 Market Road',
            is_verified=True,
            is_email_verified=True,
            password_hash=password_hash,
        )
        customer = User(
            id='demo-customer',
            email='customer@demo.local',
            name='Demo Customer',
            role=UserRole.CUSTOMER,
            contact='9000000002',
            address='4 Lake View',
            is_verified=True,
            is_email_verified=True,
            password_hash=password_hash,
        )
        for user in (retailer, customer):
            if (user.email, user.role) in existing:
                click.echo(f'{user.email} already exists, skipping.')
                continue
            store.add_user(user)

        shop = Shop(
            id=f'shop-{retailer.id}',
            owner_id=retailer.id,
            name=f"{retailer.name}'s Store",
            type=ShopType.GROCERIES,
            area='Central',
            address=retailer.address,
            is_open=True,
        )
        store.add_shop(shop)
        for index, (name, price, quantity) in enumerate(DEMO_PRODUCTS, start=1):
            store.add_product(Product(
                id=f'demo-product-{index}',
                shop_id=shop.id,
                name=name,
                price=price,
                quantity=quantity,
                image=product_image(name),
            ))
        click.echo(f'Demo data ready ({store.mode} mode). Password for both accounts: {password}')
