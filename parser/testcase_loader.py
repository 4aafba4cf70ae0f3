# parser/testcase_loader.py
import os
from typing import Mapping, Optional

from parser.testcase_parser import parse_testcase
from parser.dsl_models import TestDefinition

EXTENSIONS = (".yml", ".yaml")


class TestCaseLoader:
    def __init__(self, testcase_dir: str = "."):
        self.testcase_dir = testcase_dir

    def resolve(self, testcase_name: str) -> str:
        candidates = [testcase_name]
        if not testcase_name.endswith(EXTENSIONS):
            candidates += [testcase_name + ext for ext in EXTENSIONS]

        for candidate in candidates:
            for path in (candidate, os.path.join(self.testcase_dir, candidate)):
                if os.path.isfile(path):
                    return path

        raise FileNotFoundError(f"Testcase not found: {testcase_name}")

    def load(self, testcase_name: str, params: Optional[Mapping[str, str]] = None) -> TestDefinition:
        """
        Load testcase from file and return TestDefinition object
        """
        path = self.resolve(testcase_name)

        with open(path, encoding="utf-8") as f:
            content = f.read()

        return parse_testcase(content, params)
