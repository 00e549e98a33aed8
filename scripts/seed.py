"""Seed a development database with users, products, articles and reactions."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from pandamarket.database import engine, async_session, Base
from pandamarket.models import Article, Comment, Favorite, Like, Product, User
from pandamarket.passwords import hash_password

TAGS = ["electronics", "books", "furniture", "kids", "fashion", "sports",
        "kitchen", "games", "camping", "music", "pets", "garden"]

# Every seeded account shares this password so they can log in locally.
SEED_PASSWORD = "password1234"


async def seed(small: bool = False):
    num_users = 5 if small else 50
    num_products = 20 if small else 2000
    num_articles = 20 if small else 1000

    print(f"Seeding: {num_users} users, {num_products} products, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # One digest for every account; bcrypt is deliberately slow.
    digest = hash_password(SEED_PASSWORD)

    async with async_session() as session:
        users = [
            User(email=f"user{i:03d}@example.com", nickname=f"panda{i:03d}", password_hash=digest)
            for i in range(num_users)
        ]
        session.add_all(users)
        await session.flush()
        print(f"  Created {len(users)} users (password: {SEED_PASSWORD})")

        def _created_at() -> datetime:
            return datetime.now(timezone.utc) - timedelta(days=random.randint(0, 180))

        products = [
            Product(
                name=f"Used {random.choice(TAGS)} item #{i}",
                description=f"Gently used, pick-up only. Listing {i}.",
                price=random.randint(1, 500) * 1000,
                tags=random.sample(TAGS, k=random.randint(1, 3)),
                images=[],
                user_id=random.choice(users).id,
                created_at=_created_at(),
            )
            for i in range(num_products)
        ]
        articles = [
            Article(
                title=f"Market tip #{i}: selling {random.choice(TAGS)}",
                content=f"Notes from a seller, part {i}. " * 10,
                user_id=random.choice(users).id,
                created_at=_created_at(),
            )
            for i in range(num_articles)
        ]
        session.add_all(products + articles)
        await session.flush()
        print(f"  Created {len(products)} products and {len(articles)} articles")

        favorites = likes = comments = 0
        for user in users:
            for product in random.sample(products, k=min(len(products), random.randint(0, 5))):
                session.add(Favorite(product_id=product.id, user_id=user.id))
                favorites += 1
            for article in random.sample(articles, k=min(len(articles), random.randint(0, 5))):
                session.add(Like(article_id=article.id, user_id=user.id))
                likes += 1
            for product in random.sample(products, k=min(len(products), 2)):
                session.add(Comment(content="Is this still available?", user_id=user.id, product_id=product.id))
                comments += 1
        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Favorites: {favorites}")
    print(f"  Likes: {likes}")
    print(f"  Comments: {comments}")


def main():
    parser = argparse.ArgumentParser(description="Seed the marketplace database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
