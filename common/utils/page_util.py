import math
from typing import Any, Dict, List


def build_numbered_page(data: List, page: int, limit: int, total: int) -> Dict[str, Any]:
    """
    Build a page-number based pagination result

    @param data: items of the current page
    @param page: current page number, starting from 1
    @param limit: page size
    @param total: total number of items of all pages
    @return: page dict
    """
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "data": data,
        "page": page,
        "limit": limit,
        "total_num": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
