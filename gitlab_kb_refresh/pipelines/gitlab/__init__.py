"""GitLab source for the knowledge-base refresh pipeline.

- client: GitLab REST v4 access (project, commit, tree, raw files)
- urls: public documentation URL and product derivation from repository paths
- converters: AsciiDoc -> Markdown conversion and provenance injection
- folders: knowledge base folder hierarchy from repository paths
- archive: zip snapshot of converted files
- smart_index: generated overview document for the whole refresh
"""
