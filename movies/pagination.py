from rest_framework.pagination import PageNumberPagination


class StandardResultsPagination(PageNumberPagination):
    """
    ?page=<n>&limit=<size>, capped at 50 items per page.
    """
    page_size = 20
    page_size_query_param = "limit"
    max_page_size = 50
