"""Knowledge-base refresh pipeline.

Pull: GitLab repository tree and file contents
Convert: AsciiDoc -> Markdown, provenance injection
Archive: zip snapshot with manifest
Replace: clear and re-upload the tenant's knowledge base
"""
