# Services package.
#
# Each module exposes async functions that hold the business logic and
# database access for one concern:
#
#   auth_service          register / login / refresh, token pair issuance
#   user_service          the caller's profile, password, own products and favorites
#   article_service       Article CRUD + cached list pages
#   product_service       Product CRUD + cached list pages + price fan-out trigger
#   comment_service       comments on articles and products
#   reaction_service      like / favorite toggling and edge-derived counts
#   mutation_service      shared lookup -> ownership -> apply/delete sequence
#   notification_service  price-change fan-out and the notification inbox
#   image_service         upload validation in front of the image storage backend
#
# Every service that touches the database takes an AsyncSession first
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  The one exception is a product price change,
# which commits before fanning out (see product_service).
