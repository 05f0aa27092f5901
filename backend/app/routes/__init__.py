# Routes package init
"""
Income Records Backend: API Routes Package
=============================================

Route Inventory:
    - records.py: POST   /api/records          (create a record)
                  GET    /api/records          (filter, sort, paginate)
                  GET    /api/records/stats    (aggregate statistics)
                  DELETE /api/records/{id}     (permanent delete)
    - health.py:  GET    /health               (liveness + store check)

Routes handle HTTP concerns only (parameters, status codes, headers) and
delegate everything else to RecordService.
"""
