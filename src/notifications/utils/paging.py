def iterate_all(query, page_size: int = 100):
    """Yield every record matched by a protean queryset, one page at a time.

    Querysets apply a default limit, so full scans walk the result with
    offset/limit until a short page comes back.
    """
    offset = 0
    while True:
        items = query.offset(offset).limit(page_size).all().items
        yield from items
        if len(items) < page_size:
            return
        offset += page_size
