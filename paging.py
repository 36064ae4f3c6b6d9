DEFAULT_MAX_PAGE_SIZE = 100


def normalize_paging(page, page_size, max_page_size=DEFAULT_MAX_PAGE_SIZE):
    """Sayfa numarası ve boyutunu geçerli aralığa çek"""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = max_page_size

    page = max(1, page)
    page_size = min(max(1, page_size), max_page_size)
    return page, page_size


def paginate(query, page, page_size, max_page_size=DEFAULT_MAX_PAGE_SIZE):
    """(kayıtlar, toplam) döndür"""
    page, page_size = normalize_paging(page, page_size, max_page_size)
    pagination = query.paginate(page=page, per_page=page_size, error_out=False,
                                max_per_page=max_page_size)
    return pagination.items, pagination.total
