EMPTY_STRING = ""
