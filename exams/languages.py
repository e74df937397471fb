# exams/languages.py
from collections import namedtuple

Language = namedtuple("Language", "id name version file_name starter_code")

_PYTHON_STARTER = """\
# Write your solution here

def solution():
    # Your code here
    pass

if __name__ == "__main__":
    # Read input and call your solution
    solution()
"""

_JAVA_STARTER = """\
import java.util.*;

public class Main {
    public static void main(String[] args) {
        Scanner scanner = new Scanner(System.in);
        // Write your solution here

    }
}
"""

_CPP_STARTER = """\
#include <iostream>
#include <vector>
#include <string>
#include <algorithm>
using namespace std;

int main() {
    // Write your solution here

    return 0;
}
"""

_C_STARTER = """\
#include <stdio.h>
#include <stdlib.h>
#include <string.h>

int main() {
    // Write your solution here

    return 0;
}
"""

SUPPORTED_LANGUAGES = (
    Language("python", "Python", "3.10.0",  "main.py",   _PYTHON_STARTER),
    Language("java",   "Java",   "15.0.2",  "Main.java", _JAVA_STARTER),
    Language("cpp",    "C++",    "10.2.0",  "main.cpp",  _CPP_STARTER),
    Language("c",      "C",      "10.2.0",  "main.c",    _C_STARTER),
)

_BY_ID = {lang.id: lang for lang in SUPPORTED_LANGUAGES}


def get_language(language_id):
    return _BY_ID.get(language_id)


def language_version(language_id):
    lang = _BY_ID.get(language_id)
    return lang.version if lang else "*"


def file_name(language_id):
    lang = _BY_ID.get(language_id)
    return lang.file_name if lang else "main.txt"


def starter_code(language_id):
    lang = _BY_ID.get(language_id)
    return lang.starter_code if lang else "// Write your code here\n"


def is_supported(language_id):
    return language_id in _BY_ID


def supported_ids():
    return [lang.id for lang in SUPPORTED_LANGUAGES]


def as_dicts():
    return [
        {"id": l.id, "name": l.name, "version": l.version, "fileName": l.file_name, "starterCode": l.starter_code}
        for l in SUPPORTED_LANGUAGES
    ]
