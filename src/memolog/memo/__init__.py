"""Memo log core: codec, flat store, thread index and cascade operations.

On-disk layout of one storage unit (a markdown file):

    <!-- memo-id: 0192..., timestamp: 2025-11-04T10:00:00+09:00, category: "work" -->
    ## 2025-11-04 10:00
    first memo

    <!-- memo-id: 0193..., timestamp: 2025-11-04T10:30:00+09:00, category: "work", parent-id: 0192... -->
    ## 2025-11-04 10:30
    a reply

    <!-- memo-id: 0194..., timestamp: ..., category: "work", deleted: "true", trashedAt: "..." -->
    <!--
    ## 2025-11-04 11:00
    trashed memo, body commented out
    -->

Every function in `codec`, `store` and `cascade` is pure: text in, text out.
I/O, locking and caching live in `memolog.vault`, `memolog.cache` and
`memolog.manager`.
"""
