# default page size
LIMIT_PAGE = 20
# max page size
LIMIT_LIST = 100
# first page number
FIRST_PAGE = 1
