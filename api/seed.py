"""
Sample data for a fresh deployment: one admin account and a shelf of classics.
"""

from typing import Dict, List

import structlog

from api.access import Role
from api.database import BookStore, CredentialStore
from api.security import hash_password

logger = structlog.get_logger(__name__)

SAMPLE_ADMIN = {
    "username": "admin",
    "email": "admin@cis.kku.ac.th",
}

SAMPLE_BOOKS: List[Dict] = [
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "description": "A novel about the serious issues of rape and racial inequality, "
                       "told through the eyes of young Scout Finch in the Deep South.",
        "genre": "Classic",
        "year": 1960,
        "price": 12.99,
        "available": True,
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "description": "A dystopian novel about totalitarianism, surveillance, and the "
                       "manipulation of truth in a futuristic society.",
        "genre": "Dystopian",
        "year": 1949,
        "price": 11.99,
        "available": True,
    },
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "description": "A story of the fabulously wealthy Jay Gatsby and his love for the beautiful Daisy Buchanan.",
        "genre": "Classic",
        "year": 1925,
        "price": 10.99,
        "available": True,
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "description": "A romantic novel of manners that follows the emotional development of Elizabeth Bennet.",
        "genre": "Romance",
        "year": 1813,
        "price": 9.99,
        "available": True,
    },
    {
        "title": "The Hobbit",
        "author": "J.R.R. Tolkien",
        "description": "A fantasy novel about Bilbo Baggins, a hobbit who embarks on a quest "
                       "to reclaim the Lonely Mountain.",
        "genre": "Fantasy",
        "year": 1937,
        "price": 14.99,
        "available": True,
    },
    {
        "title": "The Catcher in the Rye",
        "author": "J.D. Salinger",
        "description": "A novel about teenage alienation and loss of innocence in post-World War II America.",
        "genre": "Coming-of-age",
        "year": 1951,
        "price": 11.99,
        "available": True,
    },
    {
        "title": "Lord of the Flies",
        "author": "William Golding",
        "description": "A novel about a group of British boys stranded on an uninhabited island "
                       "and their disastrous attempt to govern themselves.",
        "genre": "Allegory",
        "year": 1954,
        "price": 10.99,
        "available": True,
    },
    {
        "title": "Animal Farm",
        "author": "George Orwell",
        "description": "An allegorical novella about a group of farm animals who rebel against their human farmer.",
        "genre": "Allegory",
        "year": 1945,
        "price": 8.99,
        "available": True,
    },
    {
        "title": "The Alchemist",
        "author": "Paulo Coelho",
        "description": "A novel about a young Andalusian shepherd who dreams of finding a worldly treasure.",
        "genre": "Adventure",
        "year": 1988,
        "price": 13.99,
        "available": True,
    },
    {
        "title": "Brave New World",
        "author": "Aldous Huxley",
        "description": "A dystopian novel about a futuristic society where people are genetically "
                       "bred and pharmaceutically anesthetized.",
        "genre": "Dystopian",
        "year": 1932,
        "price": 12.99,
        "available": True,
    },
]


async def seed_sample_data(users: CredentialStore, books: BookStore, admin_password: str) -> Dict[str, int]:
    """
    Insert the sample admin and books, skipping anything already present.

    Books are matched by title; the admin by email. Running this twice is a
    no-op the second time.

    Returns:
        Counts of created users and books
    """
    created_users = 0
    admin = await users.find_by_email(SAMPLE_ADMIN["email"])
    if admin is None:
        admin = await users.create({
            **SAMPLE_ADMIN,
            "password": hash_password(admin_password),
            "role": Role.ADMIN.value,
        })
        created_users = 1
        logger.info("Sample admin created", user_id=admin["id"])

    created_books = 0
    for book in SAMPLE_BOOKS:
        if await books.exists_with_title(book["title"]):
            continue
        await books.create(dict(book), owner_id=admin["id"])
        created_books += 1

    logger.info("Sample data seeded", users=created_users, books=created_books)
    return {"users": created_users, "books": created_books}
