"""
OurBookmark Backend: Services Package
======================================

Business logic lives here; routes only translate HTTP to these calls.

    tracker_store      where family data lives (device document or tables)
    tracker_service    validation and CRUD on top of a TrackerStore
    progress_service   reports, library, bookshelf and share cards
    backup_service     JSON export / import
    migration_service  one-time device → account copy
    isbndb_proxy       key-holding relay to ISBNdb
    book_search        ISBNdb / Google Books / Open Library lookups
    reading_room       public profile pages and shelves
    catalog_service    shared `books` rows and the admin cover tools
"""
