# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   user_service     accounts, sessions, verification, profiles
#   category_service admin-managed categories
#   article_service  CRUD + pagination + cache for Article
#   comment_service  comments on articles
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Write functions receive bodies and rows that
# the request pipeline (``app.pipeline``) has already validated and
# authorized, and turn database errors into ``PersistenceFailure``.
