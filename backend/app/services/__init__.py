# Services package init
"""
Income Records Backend: Services Layer
=========================================

Service Inventory:
    - RecordService: create / list / delete / stats over income records
    - query_builder: query-string → typed predicates → SQL clauses
"""
