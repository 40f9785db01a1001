"""
Page-scraping integrations for student-information and learning-management
systems: classification, record parsers and the detail crawler.
"""
