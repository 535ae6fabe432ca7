# pair_index/autotest/__init__.py
