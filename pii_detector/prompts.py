"""Detection prompts sent to Gemini."""

_OUTPUT_FORMAT = """REQUIRED OUTPUT FORMAT (a single JSON object, no markdown):
{
  "flagged": true/false,
  "confidence": 0-100,
  "items": [
    {
      "category": "%(categories)s",
      "value": "the detected contact info or a description of it",
      "obfuscation": "none|leetspeak|spelled|spaces|encoded|other",
      "location": "where it appears",
      "severity": "high|medium|low"
    }
  ],
  "reasoning": "short explanation",
  "severity": "critical|high|medium|low"%(extra)s
}"""

TEXT_PROMPT_TEMPLATE = """You detect personal contact information in chat messages.
Decide whether the message below shares contact details or tries to.

Look for:
1. Phone numbers in any form: 555-123-4567, +1 (555) 123 4567, digits split by
   spaces or dots, numbers written as words, digits mixed with letters.
2. E-mail addresses, including "name at domain dot com", [at]/[dot] and
   leetspeak variants.
3. Social media handles ("@name", "insta: name", "find me on X as name").
4. Messaging app identifiers: WhatsApp, Telegram, Discord, Signal, WeChat.
5. Other channels: Skype IDs, meeting links, physical addresses, personal URLs.
6. Evasion: look-alike unicode characters, letters split by dashes, emoji
   used as digits, "DM me"/"text me"/"call me" followed by an identifier.

MESSAGE:
\"\"\"
%(text)s
\"\"\"

%(output_format)s

Flag even subtle attempts to move the conversation to another channel."""

IMAGE_PROMPT = """You detect personal contact information in images shared in a chat.

Look for:
1. Printed or handwritten phone numbers and e-mail addresses.
2. Social media handles or usernames.
3. QR codes, business cards, signs, posters, whiteboards or notes.
4. Screenshots of messaging apps or chats that share contact details.
5. Obfuscation: numbers spelled as words, leetspeak, partly hidden or blurred
   details, unusual formatting.

%s""" % (
    _OUTPUT_FORMAT
    % {
        "categories": "phone|email|qrcode|social|screenshot|other",
        "extra": ',\n  "image_contains_text": true/false',
    }
)


def build_text_prompt(text: str) -> str:
    output_format = _OUTPUT_FORMAT % {
        "categories": "phone|email|social|messaging|other",
        "extra": "",
    }
    return TEXT_PROMPT_TEMPLATE % {"text": text, "output_format": output_format}


def build_image_prompt() -> str:
    return IMAGE_PROMPT
