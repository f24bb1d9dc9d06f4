"""
OurBookmark Backend: API Routes Package
========================================

Route Inventory:
    - health.py:        GET  /health
    - auth.py:          /api/auth/{signup,signin,signout,me}
    - tracker.py:       /api/tracker/...   children, logs, goals, challenges,
                        class groups, family profile, to-read list, voice entry
    - progress.py:      /api/progress/...  derived views (report, library...)
    - backup.py:        GET/POST /api/backup
    - sync.py:          /api/sync/{status,migrate}
    - proxy.py:         /api/isbndb, /api/isbndb/search, /api/isbndb/{path}
    - books.py:         /api/books/{search,cover,room-search}
    - reading_room.py:  /api/rooms/@{username} and the owner's /api/rooms/me/...
    - admin.py:         /api/admin/books...
    - files.py:         GET /api/files/{path}

Routes stay thin: read the request, call a service, shape the response.
"""
